"""
Ora Scan Platform
Pain-Point Chat Assistant — the chat lane of the interview panel.

The prompt is grounded in the company profile, the lifecycle's process tree
(with computed scores), its stakeholders and the pain points found so far.
"""

import logging

from ora.scoring import objective_breakdown, pain_point_points, score_tree

logger = logging.getLogger(__name__)

DEFAULT_MODES = {"chat": True, "interview": False, "painpoint": False}


def build_context(company: dict | None, lifecycle: dict | None, pain_points: list[dict],
                  active_modes: dict | None = None, lifecycle_context: str = "") -> str:
    """Markdown context block for the chat prompt."""
    parts = []
    if company:
        parts.append(
            "### Company Information\n"
            f"- **Name**: {company.get('name') or 'Not specified'}\n"
            f"- **Industry**: {company.get('industry') or 'Not specified'}\n"
            f"- **Country**: {company.get('country') or 'Not specified'}\n"
            f"- **Description**: {company.get('description') or 'Not specified'}"
        )
    if lifecycle_context:
        parts.append(lifecycle_context)

    if lifecycle:
        categories = (lifecycle.get("processes") or {}).get("process_categories") or []
        scored = score_tree(categories, pain_points)
        lines = [
            "### Lifecycle Process Details",
            f"The \"{lifecycle.get('name', '')}\" lifecycle contains the following "
            "process categories and groups:",
        ]
        for index, category in enumerate(scored["process_categories"], start=1):
            lines.append(f"#### {index}. {category.get('name', '')} (Score: {category['score']})")
            for group in category["process_groups"]:
                lines.append(f"- **{group.get('name', '')}**: "
                             f"{group.get('description') or 'No description provided'} "
                             f"(Score: {group['score']})")
        stakeholders = lifecycle.get("stakeholders") or []
        if stakeholders:
            lines.append("### Stakeholders")
            lines += [f"- **{s.get('name', '')}** ({s.get('role', '')})"
                      for s in stakeholders if isinstance(s, dict)]
        parts.append("\n".join(lines))

    if pain_points:
        lines = ["### Pain Points Identified"]
        for pp in pain_points:
            breakdown = ", ".join(f"{label} {value}" for label, value in objective_breakdown(pp))
            lines.append(
                f"- **{pp.get('name') or 'Unnamed'}** [{pp.get('assigned_process_group')}] "
                f"{pain_point_points(pp)} pts" + (f" ({breakdown})" if breakdown else "")
            )
        parts.append("\n".join(lines))

    modes = {**DEFAULT_MODES, **(active_modes or {})}
    instructions = ["### Interview Instructions"]
    if modes.get("interview"):
        instructions.append("- Focus on conducting a structured interview about the business lifecycle")
    if modes.get("painpoint"):
        instructions.append("- Focus on identifying and documenting specific pain points")
    instructions.append("- Be concise but thorough in your responses")
    parts.append("\n".join(instructions))
    return "\n\n".join(parts)


class PainPointChatAssistant:
    """Answers interviewer questions in the context of one lifecycle."""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def chat(
        self,
        query: str,
        *,
        company: dict | None = None,
        lifecycle: dict | None = None,
        pain_points: list[dict] | None = None,
        conversation_history: list[dict] | None = None,
        active_modes: dict | None = None,
        lifecycle_context: str = "",
    ) -> dict:
        """
        Returns:
            dict with keys: message, query, error
        """
        result = {"message": "", "query": query, "error": None}
        if not query or not query.strip():
            result["error"] = "Missing query parameter"
            return result

        context = build_context(company, lifecycle, pain_points or [], active_modes, lifecycle_context)
        variables = dict(
            lifecycle_name=(lifecycle or {}).get("name", ""),
            company_name=(company or {}).get("name") or "the company",
            context=context,
            message=query,
        )
        try:
            rendered = self.prompt_registry.render("pain_point_chat", **variables)
        except (KeyError, AttributeError):
            rendered = [
                {"role": "system", "content": f"You are Ora, a pain point interview assistant.\n\n{context}"},
                {"role": "user", "content": f"TASK: pain_point_chat\n\n{query}"},
            ]

        # History goes between the system prompt and the new question.
        history = [
            {"role": m["role"], "content": m["content"]}
            for m in (conversation_history or [])
            if isinstance(m, dict) and m.get("role") in ("user", "assistant") and m.get("content")
        ]
        system = [m for m in rendered if m["role"] == "system"]
        user = [m for m in rendered if m["role"] != "system"]
        messages = system + history + user

        if not self.gateway:
            result["error"] = "LLM Gateway not available"
            return result

        try:
            llm_response = self.gateway.chat(messages=messages, purpose="pain_point_chat")
            result["message"] = llm_response.get("content", "")
        except Exception as exc:
            logger.error("PainPointChatAssistant LLM call failed: %s", exc)
            result["error"] = f"Error processing interview: {exc}"
        return result
