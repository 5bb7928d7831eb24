"""
Ora Scan Platform
AI Assistants package.

Assistants:
    - transcript_summarizer: interview transcript → structured pain points
    - lifecycle_generator: documents → lifecycles, lifecycle → process tree
    - pain_point_chat: interview co-pilot chat
    - scan_chat: data-room chat over the scan's documents
    - scan_insights: objectives, scoring criteria, company research, document summaries
"""

from ora.ai.assistants.lifecycle_generator import LifecycleGenerator, ProcessGenerator
from ora.ai.assistants.pain_point_chat import PainPointChatAssistant
from ora.ai.assistants.scan_chat import ScanChatAssistant
from ora.ai.assistants.scan_insights import (
    CompanyResearcher,
    DocumentSummarizer,
    ObjectivesGenerator,
    ScoringCriteriaGenerator,
)
from ora.ai.assistants.transcript_summarizer import TranscriptSummarizer

__all__ = [
    "TranscriptSummarizer",
    "LifecycleGenerator",
    "ProcessGenerator",
    "PainPointChatAssistant",
    "ScanChatAssistant",
    "ObjectivesGenerator",
    "ScoringCriteriaGenerator",
    "CompanyResearcher",
    "DocumentSummarizer",
]
