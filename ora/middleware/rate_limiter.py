"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in ora/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from ora.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

AI_LIMIT = "30/minute"
WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - AI endpoints (summarize, chat, generation): 30/minute
        - Interview session endpoints:               120/minute (utterance pushes)
        - Scan data endpoints:                       300/minute
        - Health check:                              exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("ai")
    if bp:
        limiter.limit(AI_LIMIT)(bp)

    bp = app.blueprints.get("interview")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("tenants", "documents", "lifecycles", "pain_points", "scenario"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — AI: %s, interview: %s, data: %s",
        AI_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
