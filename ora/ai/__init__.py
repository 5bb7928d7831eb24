"""
Ora Scan Platform
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, local stub)
    - prompt_registry: prompt templates (built-in defaults + optional YAML overrides)
    - assistants: transcript summarizer, lifecycle/process generator, pain-point chat
"""
