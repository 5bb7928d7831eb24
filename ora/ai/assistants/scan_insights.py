"""
Ora Scan Platform
Scan Insight Assistants — company-level generation for a scan.

Four capabilities:
    1. ObjectivesGenerator       — company + lifecycles → 4-8 strategic objectives
    2. ScoringCriteriaGenerator  — one objective → low / medium / high impact criteria
    3. CompanyResearcher         — company profile → markdown research report
    4. DocumentSummarizer        — document text → markdown summary

All return plain dicts with an ``error`` key; persistence is done by
``ora.services.insight_service``.
"""

import logging

from ora.ai.assistants.transcript_summarizer import TranscriptSummarizer

logger = logging.getLogger(__name__)

MIN_OBJECTIVES = 4
MAX_OBJECTIVES = 8
MAX_DOCUMENT_CHARS = 24000

DEFAULT_OBJECTIVE_STATUS = "to be approved"

DEFAULT_SUMMARY_INSTRUCTIONS = (
    "Provide a comprehensive summary of this document, focusing on key information relevant "
    "to business processes, operations, and organizational structure."
)

DOCUMENT_SUMMARY_INSTRUCTIONS = {
    "Annual Report": "Summarize company performance, key figures, outlook and strategic priorities.",
    "Organization Chart": "Describe the organizational structure, departments and reporting lines.",
    "Strategy Document": "Summarize the strategic goals, initiatives, targets and timelines.",
    "Process Documentation": "Summarize the documented processes, their steps, owners and systems.",
    "Financial Statements": "Summarize revenue, cost structure, margins and notable trends.",
    "IT Landscape": "List the main applications, their purpose and the key integrations.",
    "Customer Journey Map": "Describe the journey stages, touchpoints and known friction points.",
}

_parse_response = TranscriptSummarizer._parse_response


def company_block(company: dict | None) -> str:
    """Markdown company profile shared by the insight prompts."""
    company = company or {}
    lines = [
        "### Company Information",
        f"- **Name**: {company.get('name') or 'Not specified'}",
        f"- **Website**: {company.get('website') or 'Not specified'}",
        f"- **Country**: {company.get('country') or 'Not specified'}",
        f"- **Industry**: {company.get('industry') or 'Not specified'}",
        f"- **Description**: {company.get('description') or 'Not specified'}",
    ]
    return "\n".join(lines)


def lifecycles_block(lifecycles: list[dict]) -> str:
    if not lifecycles:
        return "No lifecycles defined yet."
    return "\n".join(
        f"- {lc.get('name', '')}: {lc.get('description') or 'No description'}" for lc in lifecycles
    )


def summary_instructions(document_type: str, custom_prompt: str = "") -> str:
    """The document's own prompt, else the default for its type."""
    if custom_prompt and custom_prompt.strip():
        return custom_prompt.strip()
    return DOCUMENT_SUMMARY_INSTRUCTIONS.get(document_type, DEFAULT_SUMMARY_INSTRUCTIONS)


class _Assistant:
    purpose = ""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def _call(self, template: str, result: dict, **variables) -> str | None:
        """Render ``template`` and return the LLM answer, or None with ``result['error']`` set."""
        if not self.gateway:
            result["error"] = "LLM Gateway not available"
            return None
        messages = self.prompt_registry.render(template, **variables)
        try:
            llm_response = self.gateway.chat(messages=messages, purpose=self.purpose)
        except Exception as exc:
            logger.error("%s LLM call failed: %s", type(self).__name__, exc)
            result["error"] = f"AI generation failed: {exc}"
            return None
        return llm_response.get("content", "")


class ObjectivesGenerator(_Assistant):
    """Proposes strategic objectives from the company profile and its lifecycles."""

    purpose = "objective_generation"

    def generate(self, company: dict, lifecycles: list[dict]) -> dict:
        """
        Returns:
            dict with keys: objectives ([{name, description, status}]), error
        """
        result = {"objectives": [], "error": None}
        content = self._call(
            "generate_objectives", result,
            company=company_block(company), lifecycles=lifecycles_block(lifecycles),
        )
        if content is None:
            return result

        objectives = []
        seen = set()
        for item in _parse_response(content).get("objectives") or []:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            objectives.append({
                "name": name[:200],
                "description": str(item.get("description") or ""),
                "status": DEFAULT_OBJECTIVE_STATUS,
            })

        if not objectives:
            result["error"] = "Failed to parse objectives from AI response"
            return result
        if len(objectives) < MIN_OBJECTIVES:
            logger.warning("AI proposed only %d objectives", len(objectives))
        result["objectives"] = objectives[:MAX_OBJECTIVES]
        return result


class ScoringCriteriaGenerator(_Assistant):
    """Defines what low, medium and high impact mean for one objective."""

    purpose = "scoring_criteria"

    def generate(self, company: dict, lifecycles: list[dict], strategy_documents: list[dict],
                 objective_name: str, objective_description: str = "") -> dict:
        """
        Returns:
            dict with keys: scoring_criteria ({low, medium, high}), error
        """
        result = {"scoring_criteria": None, "error": None}
        strategy = "\n\n".join(
            f"### {d.get('file_name') or d.get('document_type', 'Document')}\n{d['summarization']}"
            for d in strategy_documents if d.get("summarization")
        ) or "No strategy documents summarized yet."
        content = self._call(
            "generate_scoring_criteria", result,
            company=company_block(company),
            lifecycles=lifecycles_block(lifecycles),
            strategy_documents=strategy,
            objective_name=objective_name,
            objective_description=objective_description or "No description provided",
        )
        if content is None:
            return result

        criteria = _parse_response(content).get("scoring_criteria")
        if not isinstance(criteria, dict) or not all(criteria.get(k) for k in ("low", "medium", "high")):
            result["error"] = "Failed to parse scoring criteria from AI response"
            return result
        result["scoring_criteria"] = {k: str(criteria[k]) for k in ("low", "medium", "high")}
        return result


class CompanyResearcher(_Assistant):
    """Writes the research report shown on the company details page."""

    purpose = "company_research"

    def research(self, company: dict) -> dict:
        """
        Returns:
            dict with keys: research (markdown), error
        """
        result = {"research": "", "error": None}
        content = self._call("company_research", result, company=company_block(company))
        if content is None:
            return result
        if not content.strip():
            result["error"] = "AI returned an empty research report"
            return result
        result["research"] = content.strip()
        return result


class DocumentSummarizer(_Assistant):
    """Summarizes the extracted text of a data-room document."""

    purpose = "document_summary"

    def summarize(self, document: dict, content: str, company: dict | None = None) -> dict:
        """
        Args:
            document: Document dict; ``summarization_prompt`` overrides the
                default instructions for its type.
            content: Extracted document text (truncated to fit the prompt).

        Returns:
            dict with keys: summary, error
        """
        result = {"summary": "", "error": None}
        if not content or not content.strip():
            result["error"] = "Document has no text to summarize"
            return result
        answer = self._call(
            "summarize_document", result,
            document_type=document.get("document_type", ""),
            file_name=document.get("file_name") or "unnamed",
            company=company_block(company) if company else "",
            instructions=summary_instructions(
                document.get("document_type", ""), document.get("summarization_prompt", ""),
            ),
            content=content[:MAX_DOCUMENT_CHARS],
        )
        if answer is None:
            return result
        result["summary"] = answer.strip()
        return result
