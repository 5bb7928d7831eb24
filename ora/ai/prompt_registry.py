"""
Ora Scan Platform
Prompt Registry.

Prompt template management with:
    - Built-in default templates for every assistant
    - Optional YAML overrides from ``ORA_PROMPTS_DIR``
    - {{variable}} rendering into chat messages
    - Version tracking

Usage:
    from ora.ai.prompt_registry import PromptRegistry
    registry = PromptRegistry()
    messages = registry.render("summarize_pain_points", transcript="...",
                               objectives="...", process_groups="...")
"""

import logging
import os
import re
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class PromptTemplate:
    """A single prompt template with metadata."""

    def __init__(self, name: str, version: str, system: str, user: str,
                 description: str = "", metadata: dict | None = None):
        self.name = name
        self.version = version
        self.system = system
        self.user = user
        self.description = description
        self.metadata = metadata or {}

    def render(self, **variables) -> list[dict]:
        """
        Render template with variables, returning chat messages.

        Variables are replaced using {{variable_name}} syntax.

        Returns:
            List of message dicts: [{"role": "system", "content": "..."}, ...]
        """
        system_rendered = self._substitute(self.system, variables)
        user_rendered = self._substitute(self.user, variables)

        messages = []
        if system_rendered.strip():
            messages.append({"role": "system", "content": system_rendered})
        if user_rendered.strip():
            messages.append({"role": "user", "content": user_rendered})
        return messages

    @staticmethod
    def _substitute(template: str, variables: dict) -> str:
        """Replace {{var}} placeholders with values."""
        def replacer(match):
            key = match.group(1).strip()
            return str(variables.get(key, f"{{{{{key}}}}}"))
        return re.sub(r'\{\{(\s*\w+\s*)\}\}', replacer, template)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "system_preview": self.system[:200],
            "user_preview": self.user[:200],
        }


class PromptRegistry:
    """
    Registry for loading and managing prompt templates.

    Built-in defaults are always registered; YAML files in the prompts
    directory override them by (name, version).
    """

    def __init__(self, prompts_dir: str | None = None):
        self._prompts_dir = prompts_dir or os.getenv("ORA_PROMPTS_DIR", "")
        self._templates: dict[str, dict[str, PromptTemplate]] = {}  # name → {version → template}
        for tpl in _DEFAULT_TEMPLATES:
            self._register(tpl)
        if self._prompts_dir:
            self._load_from_dir()

    def _load_from_dir(self):
        prompts_path = Path(self._prompts_dir)
        if not prompts_path.exists():
            logger.info("Prompts directory not found: %s. Using defaults only.", self._prompts_dir)
            return

        for yaml_file in sorted(prompts_path.glob("*.yaml")):
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error("Failed to load prompt %s: %s", yaml_file.name, e)
                continue
            if not data or not isinstance(data, dict):
                continue

            tpl = PromptTemplate(
                name=data.get("name", yaml_file.stem),
                version=data.get("version", "v1"),
                system=data.get("system", ""),
                user=data.get("user", ""),
                description=data.get("description", ""),
                metadata=data.get("metadata", {}),
            )
            self._register(tpl)
            logger.info("Loaded prompt template: %s (%s) from %s",
                        tpl.name, tpl.version, yaml_file.name)

    def _register(self, template: PromptTemplate):
        self._templates.setdefault(template.name, {})[template.version] = template

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        return self._templates.get(name, {}).get(version)

    def render(self, name: str, version: str = "v1", **variables) -> list[dict]:
        """
        Render a prompt template with variables.

        Raises:
            KeyError: If template not found.
        """
        tpl = self.get(name, version)
        if not tpl:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return tpl.render(**variables)

    def list_templates(self) -> list[dict]:
        return [tpl.to_dict() for versions in self._templates.values() for tpl in versions.values()]


# ── Built-in Default Templates ────────────────────────────────────────────────
# The first line of every user prompt is a "TASK:" marker; the local stub
# provider keys its deterministic answers on it.

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="summarize_pain_points",
        version="v1",
        description="Live interview transcript → structured pain points + overall summary",
        system=(
            "You are an assistant that analyses ongoing interviews about business pain points. "
            "You extract concrete pain points, score each one against the company's strategic "
            "objectives and assign it to the process group it belongs to.\n\n"
            "Rules:\n"
            "- Each pain point has: id, name, description, assigned_process_group, "
            "cost_to_serve (integer, optional) and one integer field per objective key (0-3)\n"
            "- 0 = not applicable, 1 = low, 2 = medium, 3 = high relevance to the objective\n"
            "- assigned_process_group MUST be one of the listed process groups or \"Unassigned\"\n"
            "- Keep ids of pain points that were already identified\n"
            "- Return valid JSON only: {\"pain_points\": [...], \"overallSummary\": \"...\"}"
        ),
        user=(
            "TASK: summarize_pain_points\n\n"
            "<objectives>\n{{objectives}}\n</objectives>\n\n"
            "<process_groups>\n{{process_groups}}\n</process_groups>\n\n"
            "<existing_pain_points>\n{{existing_pain_points}}\n</existing_pain_points>\n\n"
            "<transcript>\n{{transcript}}\n</transcript>"
        ),
    ),
    PromptTemplate(
        name="generate_lifecycles",
        version="v1",
        description="Document summaries → 3-6 business lifecycles (APQC PCF)",
        system=(
            "You are a business process design expert specialized in applying the APQC "
            "Process Classification Framework to identify core business lifecycles for "
            "organizations."
        ),
        user=(
            "TASK: generate_lifecycles\n\n"
            "Company: {{company_name}} ({{industry}})\n\n"
            "Based on the document summaries below, generate 3-6 business lifecycles that "
            "represent the core operational processes of the organization.\n\n"
            "<documents>\n{{documents}}\n</documents>\n\n"
            "Return valid JSON only: {\"lifecycles\": [{\"name\": \"...\", \"description\": \"...\"}]}"
        ),
    ),
    PromptTemplate(
        name="generate_processes",
        version="v1",
        description="Lifecycle → process categories and process groups",
        system=(
            "You are a business process architect. You decompose a business lifecycle into "
            "process categories and process groups following the APQC Process Classification "
            "Framework, tailored to the company context."
        ),
        user=(
            "TASK: generate_processes\n\n"
            "Company: {{company_name}} ({{industry}})\n"
            "Lifecycle: {{lifecycle_name}}\n"
            "Description: {{lifecycle_description}}\n\n"
            "Return valid JSON only: {\"process_categories\": [{\"name\": \"...\", "
            "\"description\": \"...\", \"process_groups\": [{\"name\": \"...\", "
            "\"description\": \"...\"}]}]}"
        ),
    ),
    PromptTemplate(
        name="pain_point_chat",
        version="v1",
        description="Interview assistant chat grounded in lifecycle + current pain points",
        system=(
            "You are Ora, an interview co-pilot helping a consultant uncover business pain "
            "points for the \"{{lifecycle_name}}\" lifecycle of {{company_name}}. Suggest "
            "follow-up questions, clarify pain points and relate them to the strategic "
            "objectives. Answer concisely in markdown.\n\n"
            "<context>\n{{context}}\n</context>"
        ),
        user="TASK: pain_point_chat\n\n{{message}}",
    ),
    PromptTemplate(
        name="scan_chat",
        version="v1",
        description="Data-room chat grounded in document sections and company profile",
        system=(
            "You are Ora, an assistant helping a consultant understand the documents uploaded "
            "for a company scan. Answer from the context below; say so when it does not cover "
            "the question.\n\n"
            "{{format_instructions}}\n\n"
            "<context>\n{{context}}\n</context>"
        ),
        user="TASK: scan_chat\n\n{{message}}",
    ),
    PromptTemplate(
        name="generate_objectives",
        version="v1",
        description="Company profile + lifecycles → 4-8 strategic objectives",
        system=(
            "You are a business strategy expert specialized in creating strategic objectives "
            "for organizations in various industries."
        ),
        user=(
            "TASK: generate_objectives\n\n"
            "{{company}}\n\n"
            "<lifecycles>\n{{lifecycles}}\n</lifecycles>\n\n"
            "Generate 4-8 strategic objectives for this organization. Each objective is specific, "
            "measurable and relevant to the industry and lifecycles above. Names are short "
            "(2-5 words); descriptions are 1-2 sentences.\n\n"
            "Return valid JSON only: {\"objectives\": [{\"name\": \"...\", "
            "\"description\": \"...\"}]}"
        ),
    ),
    PromptTemplate(
        name="generate_scoring_criteria",
        version="v1",
        description="One strategic objective → low / medium / high impact criteria",
        system=(
            "You are a business strategy expert specialized in creating evaluation criteria "
            "for strategic objectives."
        ),
        user=(
            "TASK: generate_scoring_criteria\n\n"
            "{{company}}\n\n"
            "<lifecycles>\n{{lifecycles}}\n</lifecycles>\n\n"
            "<strategy_documents>\n{{strategy_documents}}\n</strategy_documents>\n\n"
            "Strategic Objective:\nTitle: {{objective_name}}\nDescription: {{objective_description}}\n\n"
            "Describe in 1-2 sentences each what a low (1), medium (2) and high (3) impact on "
            "this objective looks like. Use quantifiable examples where possible.\n\n"
            "Return valid JSON only: {\"scoring_criteria\": {\"low\": \"...\", "
            "\"medium\": \"...\", \"high\": \"...\"}}"
        ),
    ),
    PromptTemplate(
        name="company_research",
        version="v1",
        description="Company profile → markdown research report",
        system=(
            "You are an expert business analyst specializing in company research and "
            "corporate profiling."
        ),
        user=(
            "TASK: company_research\n\n"
            "{{company}}\n\n"
            "Write a research report on this company in markdown with these sections: "
            "Company Overview, History & Milestones, Industry & Market Position, "
            "Size & Structure, Products & Services, Recent News, Customer Support, "
            "Resources & Process Documentation, Quality Certifications. "
            "Aim for 500-800 words and mark information you could not verify."
        ),
    ),
    PromptTemplate(
        name="summarize_document",
        version="v1",
        description="Data-room document text → markdown summary",
        system=(
            "You are a business analyst who extracts and summarizes key information from "
            "business documents."
        ),
        user=(
            "TASK: summarize_document\n\n"
            "Document type: {{document_type}}\n"
            "File name: {{file_name}}\n\n"
            "{{company}}\n\n"
            "{{instructions}}\n\n"
            "<document>\n{{content}}\n</document>"
        ),
    ),
]
