"""
Ora Scan Platform
Per-application AI singletons.

Each getter builds its object once and caches it on the Flask app, so
tests can swap in a fake by setting the attribute (e.g. ``app._ai_gateway``).
"""

from flask import current_app

from ora.ai.assistants import (
    CompanyResearcher,
    DocumentSummarizer,
    LifecycleGenerator,
    ObjectivesGenerator,
    PainPointChatAssistant,
    ProcessGenerator,
    ScanChatAssistant,
    ScoringCriteriaGenerator,
    TranscriptSummarizer,
)
from ora.ai.gateway import LLMGateway
from ora.ai.prompt_registry import PromptRegistry


def get_gateway():
    if not hasattr(current_app, "_ai_gateway"):
        current_app._ai_gateway = LLMGateway(app=current_app)
    return current_app._ai_gateway


def get_prompt_registry():
    if not hasattr(current_app, "_ai_prompt_registry"):
        current_app._ai_prompt_registry = PromptRegistry(
            current_app.config.get("PROMPTS_DIR") or None,
        )
    return current_app._ai_prompt_registry


def get_summarizer() -> TranscriptSummarizer:
    if not hasattr(current_app, "_ai_summarizer"):
        current_app._ai_summarizer = TranscriptSummarizer(
            gateway=get_gateway(), prompt_registry=get_prompt_registry(),
        )
    return current_app._ai_summarizer


def get_lifecycle_generator() -> LifecycleGenerator:
    if not hasattr(current_app, "_ai_lifecycle_generator"):
        current_app._ai_lifecycle_generator = LifecycleGenerator(
            gateway=get_gateway(), prompt_registry=get_prompt_registry(),
        )
    return current_app._ai_lifecycle_generator


def get_process_generator() -> ProcessGenerator:
    if not hasattr(current_app, "_ai_process_generator"):
        current_app._ai_process_generator = ProcessGenerator(
            gateway=get_gateway(), prompt_registry=get_prompt_registry(),
        )
    return current_app._ai_process_generator


def get_chat_assistant() -> PainPointChatAssistant:
    if not hasattr(current_app, "_ai_chat_assistant"):
        current_app._ai_chat_assistant = PainPointChatAssistant(
            gateway=get_gateway(), prompt_registry=get_prompt_registry(),
        )
    return current_app._ai_chat_assistant


def _assistant(attr: str, cls):
    if not hasattr(current_app, attr):
        setattr(current_app, attr, cls(gateway=get_gateway(), prompt_registry=get_prompt_registry()))
    return getattr(current_app, attr)


def get_scan_chat() -> ScanChatAssistant:
    return _assistant("_ai_scan_chat", ScanChatAssistant)


def get_objectives_generator() -> ObjectivesGenerator:
    return _assistant("_ai_objectives_generator", ObjectivesGenerator)


def get_scoring_criteria_generator() -> ScoringCriteriaGenerator:
    return _assistant("_ai_scoring_criteria_generator", ScoringCriteriaGenerator)


def get_company_researcher() -> CompanyResearcher:
    return _assistant("_ai_company_researcher", CompanyResearcher)


def get_document_summarizer() -> DocumentSummarizer:
    return _assistant("_ai_document_summarizer", DocumentSummarizer)
