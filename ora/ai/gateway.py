"""
Ora Scan Platform
LLM Gateway.

Provider-agnostic LLM router with:
    - Multi-provider support (Anthropic Claude, OpenAI, Gemini, local stub)
    - Auto-retry with exponential backoff
    - Token and latency logging

Usage:
    from ora.ai.gateway import LLMGateway
    gw = LLMGateway()
    result = gw.chat([{"role": "user", "content": "..."}], purpose="transcript_summary")
"""

import json
import logging
import os
import re
import threading
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, etc.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()

        # Separate system message
        system_msg = ""
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.3),
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)

        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    def __init__(self):
        self.api_key = os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 4096),
            temperature=kwargs.get("temperature", 0.3),
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content,
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


# ── Google Gemini Provider ───────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Environment:
        GEMINI_API_KEY
    """

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
            except ImportError:
                raise RuntimeError(
                    "google-genai package not installed. Run: pip install google-genai"
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        # Gemini takes the system prompt as config, not as a message
        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(
                    types.Content(role=role, parts=[types.Part(text=m["content"])])
                )

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.3),
            max_output_tokens=kwargs.get("max_tokens", 4096),
        )
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)

        response = client.models.generate_content(model=model, contents=contents, config=config)

        prompt_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
        completion_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        return {
            "content": response.text or "",
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "model": model,
        }


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

_ISSUE_WORDS = (
    "slow", "manual", "delay", "error", "problem", "issue", "difficult",
    "frustrat", "too long", "lack", "missing", "bottleneck", "complain",
)
_SEVERE_WORDS = ("very", "critical", "always", "major", "huge")


def _block(text: str, tag: str) -> str:
    match = re.search(rf"<{tag}>\s*(.*?)\s*</{tag}>", text, re.DOTALL)
    return match.group(1) if match else ""


class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic responses for dev/testing.
    No API key required.

    The answer is chosen by the ``TASK: <name>`` marker on the first line of
    the last user message.
    """

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._generate_stub_response(user_msg)

        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @classmethod
    def _generate_stub_response(cls, user_msg: str) -> str:
        task = ""
        match = re.match(r"\s*TASK:\s*(\w+)", user_msg)
        if match:
            task = match.group(1)

        if task == "summarize_pain_points":
            return json.dumps(cls._stub_pain_points(user_msg))

        if task == "generate_lifecycles":
            return json.dumps({"lifecycles": [
                {"name": "Order to Cash",
                 "description": "From customer order through fulfilment, invoicing and collection."},
                {"name": "Procure to Pay",
                 "description": "From purchase requisition through supplier payment."},
                {"name": "Record to Report",
                 "description": "Financial close, consolidation and management reporting."},
                {"name": "Hire to Retire",
                 "description": "Workforce planning, onboarding, development and offboarding."},
            ]})

        if task == "generate_processes":
            lifecycle = re.search(r"Lifecycle:\s*(.+)", user_msg)
            prefix = lifecycle.group(1).strip() if lifecycle else "Process"
            return json.dumps({"process_categories": [
                {"name": "Plan", "description": f"Planning activities for {prefix}.",
                 "process_groups": [
                     {"name": "Demand Planning", "description": "Forecast and plan demand."},
                     {"name": "Policy Management", "description": "Define policies and rules."},
                 ]},
                {"name": "Execute", "description": f"Day-to-day execution of {prefix}.",
                 "process_groups": [
                     {"name": "Order Handling", "description": "Capture and process requests."},
                     {"name": "Fulfilment", "description": "Deliver the requested outcome."},
                 ]},
                {"name": "Monitor", "description": f"Performance monitoring of {prefix}.",
                 "process_groups": [
                     {"name": "Reporting", "description": "Measure and report KPIs."},
                 ]},
            ]})

        if task == "pain_point_chat":
            question = user_msg.split("\n", 1)[-1].strip()
            return (
                "**Suggested follow-up**\n\n"
                f"You asked: _{question[:200]}_\n\n"
                "- Which step takes the most time today?\n"
                "- How often does this problem occur, and who is affected?\n"
                "- Which strategic objective suffers most?"
            )

        if task == "scan_chat":
            question = user_msg.split("\n", 1)[-1].strip()
            return f"### Answer\n\nBased on the uploaded documents: _{question[:200]}_"

        if task == "generate_objectives":
            return json.dumps({"objectives": [
                {"name": "Customer Satisfaction",
                 "description": "Raise customer satisfaction scores by 15% within two years."},
                {"name": "Cost Reduction",
                 "description": "Lower operating cost per order by 10%."},
                {"name": "Operational Excellence",
                 "description": "Standardize and automate core processes."},
                {"name": "Cost Reduction",
                 "description": "Duplicate entry the caller drops."},
                {"name": "Employee Engagement",
                 "description": "Improve retention of key staff."},
            ]})

        if task == "generate_scoring_criteria":
            title = re.search(r"Title:\s*(.+)", user_msg)
            objective = title.group(1).strip() if title else "the objective"
            return json.dumps({"scoring_criteria": {
                "low": f"Marginal effect on {objective}, under 2% improvement.",
                "medium": f"Noticeable effect on {objective}, 2-10% improvement.",
                "high": f"Transformative effect on {objective}, over 10% improvement.",
            }})

        if task == "company_research":
            name = re.search(r"- \*\*Name\*\*:\s*(.+)", user_msg)
            company = name.group(1).strip() if name else "The company"
            return (
                f"## Company Overview\n\n{company} is profiled from the details on record.\n\n"
                "## Industry & Market Position\n\nNot verified."
            )

        if task == "summarize_document":
            doc_type = re.search(r"Document type:\s*(.+)", user_msg)
            words = _block(user_msg, "document").split()
            return (
                f"## {doc_type.group(1).strip() if doc_type else 'Document'} Summary\n\n"
                f"{' '.join(words[:40])}"
            )

        return (
            "This is a local stub response. Configure GEMINI_API_KEY, ANTHROPIC_API_KEY "
            "or OPENAI_API_KEY to use a real model."
        )

    @staticmethod
    def _stub_pain_points(user_msg: str) -> dict:
        """Keyword-based pain-point extraction from the <transcript> block."""
        objectives = sorted(set(re.findall(r"\bso_\w+", _block(user_msg, "objectives"))))
        groups = [
            line.strip().lstrip("-").strip()
            for line in _block(user_msg, "process_groups").splitlines()
            if line.strip().lstrip("-").strip()
        ]
        transcript = _block(user_msg, "transcript")

        pain_points = []
        for line in transcript.splitlines():
            text = re.sub(r"^\[\d{2}:\d{2}:\d{2}\]\s*", "", line).strip()
            if ":" in text[:40]:
                text = text.split(":", 1)[1].strip()
            lower = text.lower()
            if not text or not any(word in lower for word in _ISSUE_WORDS):
                continue

            group = next((g for g in groups if g.lower() in lower), "Unassigned")
            score = 3 if any(word in lower for word in _SEVERE_WORDS) else 2
            name = " ".join(text.rstrip(".!?").split()[:6])
            pp = {
                "id": f"pp-{len(pain_points) + 1}",
                "name": name,
                "description": text,
                "assigned_process_group": group,
            }
            for key in objectives:
                pp[key] = score
            pain_points.append(pp)

        if pain_points:
            summary = (f"The interview surfaced {len(pain_points)} pain point(s), "
                       f"most notably: {pain_points[0]['name']}.")
        else:
            summary = "The conversation so far has not surfaced concrete pain points."
        return {"pain_points": pain_points, "overallSummary": summary}


# ── Gateway ──────────────────────────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider routing based on model name
        - Auto-retry with exponential backoff
        - Token/latency logging

    Usage:
        gw = LLMGateway()
        result = gw.chat(
            messages=[{"role": "user", "content": "..."}],
            purpose="transcript_summary",
        )
    """

    # Model → provider mapping
    PROVIDER_MAP = {
        # Anthropic
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        # Google Gemini
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        "gemini-2.0-flash": "gemini",
        # Local stub (dev/test)
        "local-stub": "local",
    }

    DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    def __init__(self, app=None):
        self._providers = {}
        self._app = app
        self._init_providers()

    def _init_providers(self):
        """Initialize available providers based on environment."""
        self._providers["local"] = LocalStubProvider()

        if os.getenv("GEMINI_API_KEY"):
            self._providers["gemini"] = GeminiProvider()
        if os.getenv("ANTHROPIC_API_KEY"):
            self._providers["anthropic"] = AnthropicProvider()
        if os.getenv("OPENAI_API_KEY"):
            self._providers["openai"] = OpenAIProvider()

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        """
        Resolve model to provider. Falls back to local stub if real provider unavailable.
        Returns (provider, provider_name).
        """
        provider_name = self.PROVIDER_MAP.get(model, "local")

        if provider_name in self._providers:
            return self._providers[provider_name], provider_name

        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        purpose: str = "",
        max_retries: int = 3,
        **kwargs,
    ) -> dict:
        """
        Send a chat completion request with retry.

        Args:
            messages: Chat messages.
            model: Model identifier (defaults to DEFAULT_CHAT_MODEL).
            purpose: What the call is for (e.g. "transcript_summary").
            max_retries: Number of attempts before giving up.
            **kwargs: temperature, max_tokens passed to provider.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, latency_ms, provider}

        Raises:
            RuntimeError: every attempt failed.
        """
        model = model or self.DEFAULT_CHAT_MODEL
        provider, provider_name = self._get_provider(model)

        last_error = None
        for attempt in range(1, max_retries + 1):
            start_time = time.time()
            try:
                result = provider.chat(messages, model, **kwargs)
                latency_ms = int((time.time() - start_time) * 1000)
                result["latency_ms"] = latency_ms
                result["provider"] = provider_name
                self._log_usage(
                    provider=provider_name, model=result.get("model", model),
                    prompt_tokens=result["prompt_tokens"],
                    completion_tokens=result["completion_tokens"],
                    latency_ms=latency_ms, purpose=purpose, success=True,
                )
                return result

            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed: %s", attempt, max_retries, e)

                if attempt < max_retries:
                    backoff = min(2 ** (attempt - 1), 4)
                    threading.Event().wait(backoff)

        self._log_usage(
            provider=provider_name, model=model,
            prompt_tokens=0, completion_tokens=0, latency_ms=0,
            purpose=purpose, success=False, error_message=str(last_error),
        )
        raise RuntimeError(f"LLM call failed after {max_retries} retries: {last_error}")

    @staticmethod
    def _log_usage(*, provider, model, prompt_tokens, completion_tokens,
                   latency_ms, purpose, success, error_message=None):
        level = logging.INFO if success else logging.ERROR
        logger.log(
            level,
            "LLM %s/%s purpose=%s tokens=%d+%d latency=%dms%s",
            provider, model, purpose or "-", prompt_tokens, completion_tokens, latency_ms,
            "" if success else f" error={error_message}",
        )
