"""
Ora Scan Platform
Lifecycle & Process Generators.

Two capabilities:
    1. LifecycleGenerator — document summaries → 3-6 business lifecycles
    2. ProcessGenerator   — one lifecycle → process categories and groups

Both return plain dicts with an ``error`` key; persistence is done by
``ora.services.lifecycle_service``.
"""

import logging

from ora.ai.assistants.transcript_summarizer import TranscriptSummarizer

logger = logging.getLogger(__name__)

MIN_LIFECYCLES = 3
MAX_LIFECYCLES = 6

_parse_response = TranscriptSummarizer._parse_response


class LifecycleGenerator:
    """Proposes the core business lifecycles of a scanned company."""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def generate(self, company: dict, documents: list[dict]) -> dict:
        """
        Args:
            company: CompanyInfo dict (name, industry, ...).
            documents: Uploaded documents; their ``summarization`` (or file
                name when not yet summarized) feeds the prompt.

        Returns:
            dict with keys: lifecycles ([{name, description}]), error
        """
        result = {"lifecycles": [], "error": None}
        if not documents:
            result["error"] = "No completed documents found for this scan. Please upload files first."
            return result

        docs_block = "\n\n".join(
            f"### {d.get('document_type', 'Document')} ({d.get('file_name') or 'unnamed'})\n"
            f"{d.get('summarization') or 'No summary available yet.'}"
            for d in documents
        )
        variables = dict(
            company_name=company.get("name") or "the company",
            industry=company.get("industry") or "unspecified industry",
            documents=docs_block,
        )
        try:
            messages = self.prompt_registry.render("generate_lifecycles", **variables)
        except (KeyError, AttributeError):
            messages = [{"role": "user", "content": (
                "TASK: generate_lifecycles\n\n"
                f"Company: {variables['company_name']} ({variables['industry']})\n\n"
                f"<documents>\n{docs_block}\n</documents>\n\n"
                "Return JSON: {\"lifecycles\": [{\"name\": \"...\", \"description\": \"...\"}]}"
            )}]

        if not self.gateway:
            result["error"] = "LLM Gateway not available"
            return result

        try:
            llm_response = self.gateway.chat(messages=messages, purpose="lifecycle_generation")
        except Exception as exc:
            logger.error("LifecycleGenerator LLM call failed: %s", exc)
            result["error"] = f"AI generation failed: {exc}"
            return result

        parsed = _parse_response(llm_response.get("content", ""))
        lifecycles = []
        seen = set()
        for item in parsed.get("lifecycles") or []:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            lifecycles.append({"name": name[:200], "description": str(item.get("description") or "")})

        if len(lifecycles) < MIN_LIFECYCLES:
            result["error"] = (f"AI returned {len(lifecycles)} lifecycle(s); "
                               f"at least {MIN_LIFECYCLES} are required")
            return result
        result["lifecycles"] = lifecycles[:MAX_LIFECYCLES]
        return result


class ProcessGenerator:
    """Decomposes a lifecycle into process categories and process groups."""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def generate(self, company: dict, lifecycle: dict) -> dict:
        """
        Returns:
            dict with keys: process_categories, error
        """
        result = {"process_categories": [], "error": None}
        variables = dict(
            company_name=company.get("name") or "the company",
            industry=company.get("industry") or "unspecified industry",
            lifecycle_name=lifecycle.get("name", ""),
            lifecycle_description=lifecycle.get("description") or "",
        )
        try:
            messages = self.prompt_registry.render("generate_processes", **variables)
        except (KeyError, AttributeError):
            messages = [{"role": "user", "content": (
                "TASK: generate_processes\n\n"
                f"Lifecycle: {variables['lifecycle_name']}\n"
                f"Description: {variables['lifecycle_description']}\n\n"
                "Return JSON: {\"process_categories\": [...]}"
            )}]

        if not self.gateway:
            result["error"] = "LLM Gateway not available"
            return result

        try:
            llm_response = self.gateway.chat(messages=messages, purpose="process_generation")
        except Exception as exc:
            logger.error("ProcessGenerator LLM call failed: %s", exc)
            result["error"] = f"AI generation failed: {exc}"
            return result

        parsed = _parse_response(llm_response.get("content", ""))
        categories = []
        for raw in parsed.get("process_categories") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            groups = [
                {
                    "name": str(g["name"]).strip(),
                    "description": str(g.get("description") or ""),
                    "score": 0,
                    "processes": list(g.get("processes") or []),
                }
                for g in (raw.get("process_groups") or [])
                if isinstance(g, dict) and g.get("name")
            ]
            categories.append({
                "name": str(raw["name"]).strip(),
                "description": str(raw.get("description") or ""),
                "score": 0,
                "process_groups": groups,
            })

        if not categories:
            result["error"] = "AI response contained no process categories"
            return result
        result["process_categories"] = categories
        return result
