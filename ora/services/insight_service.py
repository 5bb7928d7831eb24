"""
Insight Service — AI-generated company insights of a scan.

Functions:
    - generate_objectives:        Replace the strategic objectives with AI-proposed ones
    - generate_scoring_criteria:  Low / medium / high impact criteria of one objective
    - research_company:           Regenerate and store the company research report
    - scan_chat:                  Answer a question over the scan's documents

Generators are injectable for tests; by default they come from
``ora.ai.factory``.
"""

import logging

from sqlalchemy import select

from ora.ai import factory
from ora.core.exceptions import UpstreamError, ValidationError
from ora.models import db
from ora.models.document import Document
from ora.services import lifecycle_service, tenant_service

logger = logging.getLogger(__name__)

STRATEGY_DOCUMENT_TYPE = "Strategy Document"


def _lifecycles(slug: str, workspace_id: str, scan_id: str) -> list[dict]:
    return [
        {"name": lc["name"], "description": lc.get("description") or ""}
        for lc in lifecycle_service.list_lifecycles(slug, workspace_id, scan_id, repair_positions=False)
    ]


def _uploaded_documents(scan_id: str, document_type: str | None = None) -> list[dict]:
    """Uploaded documents of a scan, with their extracted text."""
    stmt = select(Document).where(Document.scan_id == scan_id, Document.status != "placeholder")
    if document_type:
        stmt = stmt.where(Document.document_type == document_type)
    docs = db.session.execute(stmt.order_by(Document.created_at)).scalars().all()
    return [{**d.to_dict(), "content": d.content or ""} for d in docs]


def generate_objectives(slug: str, workspace_id: str, scan_id: str, generator=None) -> list[dict]:
    """Replace the scan's strategic objectives with AI-proposed ones.

    Raises:
        UpstreamError: the generator failed or returned nothing usable.
    """
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    generator = generator or factory.get_objectives_generator()
    result = generator.generate(company, _lifecycles(slug, workspace_id, scan_id))
    if result.get("error"):
        raise UpstreamError(result["error"])
    objectives = tenant_service.update_strategic_objectives(
        slug, workspace_id, scan_id, result["objectives"],
    )
    logger.info("Generated %d strategic objectives", len(objectives),
                extra={"tenant_slug": slug, "scan_id": scan_id})
    return objectives


def generate_scoring_criteria(slug: str, workspace_id: str, scan_id: str, objective_name: str,
                              objective_description: str = "", generator=None) -> dict:
    """Impact criteria for one objective; nothing is stored.

    Returns:
        {low, medium, high}
    """
    if not objective_name or not objective_name.strip():
        raise ValidationError("objective_name is required.", details={"objective_name": "required"})
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    generator = generator or factory.get_scoring_criteria_generator()
    result = generator.generate(
        company,
        _lifecycles(slug, workspace_id, scan_id),
        _uploaded_documents(scan.id, STRATEGY_DOCUMENT_TYPE),
        objective_name.strip(),
        objective_description or "",
    )
    if result.get("error"):
        raise UpstreamError(result["error"])
    return result["scoring_criteria"]


def research_company(slug: str, workspace_id: str, scan_id: str, researcher=None) -> str:
    """Regenerate the company research report and store it on the company details."""
    company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    researcher = researcher or factory.get_company_researcher()
    result = researcher.research(company)
    if result.get("error"):
        raise UpstreamError(result["error"])
    tenant_service.update_company_details(slug, workspace_id, scan_id, {"research": result["research"]})
    logger.info("Company research generated", extra={"tenant_slug": slug, "scan_id": scan_id})
    return result["research"]


def scan_chat(slug: str, workspace_id: str, scan_id: str, query: str, *,
              conversation_history=None, document_status: str = "", company: dict | None = None,
              format_instructions: str | None = None, assistant=None) -> dict:
    """Answer ``query`` from the scan's uploaded documents.

    ``company`` defaults to the stored company details.

    Returns:
        {message, results, query}
    """
    if not query or not str(query).strip():
        raise ValidationError("Missing query parameter", details={"query": "required"})
    scan = tenant_service.get_scan(slug, workspace_id, scan_id)
    if company is None:
        company = tenant_service.get_company_details(slug, workspace_id, scan_id)
    assistant = assistant or factory.get_scan_chat()
    kwargs = {}
    if format_instructions:
        kwargs["format_instructions"] = format_instructions
    result = assistant.chat(
        str(query),
        documents=_uploaded_documents(scan.id),
        company=company,
        document_status=document_status or "",
        conversation_history=conversation_history if isinstance(conversation_history, list) else [],
        **kwargs,
    )
    if result.get("error"):
        raise UpstreamError(result["error"])
    return {"message": result["message"], "results": result["results"], "query": result["query"]}
