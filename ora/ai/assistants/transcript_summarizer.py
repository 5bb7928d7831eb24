"""
Ora Scan Platform
Transcript Summarizer — live interview transcript → structured pain points.

Pipeline:
    1. Short-circuit transcripts too short to summarize
    2. Render the summarize_pain_points prompt (objectives, groups, existing pain points)
    3. Call LLM → JSON {"pain_points": [...], "overallSummary": "..."}
    4. Normalise every pain point (ids, group default, so_* clamped to 0..3)
"""

import json
import logging
import re

from ora.scoring import UNASSIGNED, objective_key
from ora.services.pain_point_service import normalize_pain_point

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 10
MIN_SPEAKER_TURNS = 2

WAITING_SUMMARY = (
    "## Waiting for Conversation\n\nNot enough conversation to summarize yet. As participants "
    "speak, key points will be summarized here automatically."
)
INITIAL_SUMMARY = (
    "## Initial Conversation\n\nThe conversation is just starting. More detailed summary will "
    "appear as the discussion progresses."
)
FALLBACK_SUMMARY = (
    "## Summary\n\nUnable to generate a detailed summary at this time. Please try again later."
)


def speaker_turns(text: str) -> int:
    """Lines containing ``:``; timestamped utterances always count."""
    return sum(1 for line in text.split("\n") if ":" in line)


class TranscriptSummarizer:
    """Turns an interview transcript into a pain-point summary."""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def summarize(
        self,
        text: str,
        objectives: list[dict] | None = None,
        process_groups: list[str] | None = None,
        existing_pain_points: list[dict] | None = None,
    ) -> dict:
        """
        Summarize a transcript.

        Args:
            text: Accumulated transcript.
            objectives: Strategic objectives ``[{name, description}]``; each
                becomes an ``so_<snake_name>`` score field.
            process_groups: Group names pain points may be assigned to.
            existing_pain_points: Pain points already identified; returned
                unchanged when the transcript is too short or the LLM fails.

        Returns:
            dict with keys: pain_points, overallSummary, status, error
            (status is one of waiting, initial, generated, fallback)
        """
        existing = list(existing_pain_points or [])
        result = {
            "pain_points": existing,
            "overallSummary": "",
            "status": "generated",
            "error": None,
        }
        text = text or ""

        if len(text.strip()) < MIN_TEXT_LENGTH:
            result.update(overallSummary=WAITING_SUMMARY, status="waiting")
            return result

        if speaker_turns(text) < MIN_SPEAKER_TURNS:
            result.update(overallSummary=INITIAL_SUMMARY, status="initial")
            return result

        messages = self._build_messages(text, objectives or [], process_groups or [], existing)

        if not self.gateway:
            result.update(overallSummary=FALLBACK_SUMMARY, status="fallback",
                          error="LLM Gateway not available")
            return result

        try:
            llm_response = self.gateway.chat(messages=messages, purpose="transcript_summary")
            parsed = self._parse_response(llm_response.get("content", ""))
        except Exception as exc:
            logger.error("TranscriptSummarizer LLM call failed: %s", exc)
            result.update(overallSummary=FALLBACK_SUMMARY, status="fallback",
                          error=f"AI summarization failed: {exc}")
            return result

        raw_points = parsed.get("pain_points")
        if raw_points is None:
            raw_points = parsed.get("painPoints")
        if not isinstance(raw_points, list):
            result.update(overallSummary=FALLBACK_SUMMARY, status="fallback",
                          error="AI response did not contain a pain point list")
            return result

        known = set(process_groups or [])
        pain_points = []
        for raw in raw_points:
            if not isinstance(raw, dict):
                continue
            pp = normalize_pain_point(raw)
            if known and pp["assigned_process_group"] not in known:
                pp["assigned_process_group"] = UNASSIGNED
            pain_points.append(pp)

        summary = str(parsed.get("overallSummary") or parsed.get("overall_summary") or "")
        if summary and "#" not in summary:
            summary = f"## Summary\n\n{summary}"
        result.update(pain_points=pain_points, overallSummary=summary)
        return result

    # ── Prompt ────────────────────────────────────────────────────────────

    def _build_messages(self, text, objectives, process_groups, existing) -> list[dict]:
        objectives_block = "\n".join(
            f"- {objective_key(o.get('name', ''))}: {o.get('name', '')}"
            + (f" ({o['description']})" if o.get("description") else "")
            for o in objectives if isinstance(o, dict) and o.get("name")
        ) or "(none defined)"
        groups_block = "\n".join(f"- {g}" for g in process_groups) or "(none defined)"
        existing_block = json.dumps(existing, indent=2) if existing else "[]"

        variables = dict(
            transcript=text,
            objectives=objectives_block,
            process_groups=groups_block,
            existing_pain_points=existing_block,
        )
        if self.prompt_registry:
            try:
                return self.prompt_registry.render("summarize_pain_points", **variables)
            except KeyError:
                pass
        return self._fallback_prompt(**variables)

    @staticmethod
    def _fallback_prompt(*, transcript, objectives, process_groups, existing_pain_points) -> list[dict]:
        return [
            {"role": "system", "content": (
                "You extract business pain points from interview transcripts. "
                "Return JSON: {\"pain_points\": [...], \"overallSummary\": \"...\"}"
            )},
            {"role": "user", "content": (
                "TASK: summarize_pain_points\n\n"
                f"<objectives>\n{objectives}\n</objectives>\n\n"
                f"<process_groups>\n{process_groups}\n</process_groups>\n\n"
                f"<existing_pain_points>\n{existing_pain_points}\n</existing_pain_points>\n\n"
                f"<transcript>\n{transcript}\n</transcript>"
            )},
        ]

    @staticmethod
    def _parse_response(content: str) -> dict:
        cleaned = (content or "").strip()
        if cleaned.startswith("```"):
            cleaned = re.sub(r"^```\w*\n?", "", cleaned)
            cleaned = re.sub(r"\n?```$", "", cleaned)
        try:
            parsed = json.loads(cleaned)
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            match = re.search(r"\{.*\}", cleaned, re.DOTALL)
            if match:
                try:
                    return json.loads(match.group())
                except json.JSONDecodeError:
                    return {}
        return {}
