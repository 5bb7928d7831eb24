"""
Ora Scan Platform
Scan Chat Assistant — the data-room chat of a scan.

Pipeline:
    1. Split every uploaded document (extracted text, else its summary) into
       overlapping sections
    2. Rank sections against the question with BM25 keyword scoring
    3. Ground the prompt in the document status, company profile and the
       top sections; without sections or status, answer with a fixed message
    4. On LLM failure with sections at hand, list the raw sections instead
"""

import logging
import math
import re
from collections import defaultdict

logger = logging.getLogger(__name__)

TOP_K = 5
SECTION_WORDS = 300
SECTION_OVERLAP = 40
RAW_PREVIEW_CHARS = 500

DEFAULT_FORMAT_INSTRUCTIONS = (
    "Format lists with dashes (-) and use ** for bold text and * for italic. "
    "Use ### for section headings."
)

NO_RESULTS_MESSAGE = (
    "I don't have any relevant information about that in the documents you've uploaded. "
    "Please try asking something else or upload more documents."
)


def _tokenize(text: str) -> list[str]:
    return re.findall(r"\b\w+\b", text.lower())


def split_sections(text: str, max_words: int = SECTION_WORDS,
                   overlap: int = SECTION_OVERLAP) -> list[str]:
    """Overlapping word windows of ``text``."""
    words = text.split()
    if len(words) <= max_words:
        return [" ".join(words)] if words else []
    sections = []
    start = 0
    while start < len(words):
        sections.append(" ".join(words[start:start + max_words]))
        if start + max_words >= len(words):
            break
        start += max_words - overlap
    return sections


def document_sections(documents: list[dict]) -> list[dict]:
    sections = []
    for doc in documents:
        text = doc.get("content") or doc.get("summarization") or ""
        for index, section in enumerate(split_sections(text)):
            sections.append({
                "document_id": doc.get("id"),
                "document_type": doc.get("document_type", ""),
                "file_name": doc.get("file_name") or "",
                "section": index,
                "text": section,
            })
    return sections


def rank_sections(query: str, sections: list[dict], top_k: int = TOP_K) -> list[dict]:
    """BM25 keyword ranking; sections sharing no term with ``query`` are dropped."""
    query_tokens = set(_tokenize(query))
    if not query_tokens or not sections:
        return []

    tokens = [_tokenize(s["text"]) for s in sections]
    df = defaultdict(int)
    for toks in tokens:
        for t in set(toks):
            df[t] += 1
    n = len(sections)
    avg_dl = sum(len(t) for t in tokens) / max(n, 1)
    k1, b = 1.2, 0.75

    scored = []
    for section, toks in zip(sections, tokens):
        if not toks:
            continue
        tf = defaultdict(int)
        for t in toks:
            tf[t] += 1
        score = 0.0
        for qt in query_tokens:
            if qt in tf:
                idf = math.log((n - df[qt] + 0.5) / (df[qt] + 0.5) + 1)
                score += idf * (tf[qt] * (k1 + 1)) / (tf[qt] + k1 * (1 - b + b * len(toks) / max(avg_dl, 1)))
        if score > 0:
            scored.append({**section, "score": round(score, 4)})

    scored.sort(key=lambda s: s["score"], reverse=True)
    return scored[:top_k]


def _raw_message(results: list[dict]) -> str:
    sections = "\n\n".join(
        f"- **Document section {i}:**\n   {r['text'][:RAW_PREVIEW_CHARS]}"
        f"{'...' if len(r['text']) > RAW_PREVIEW_CHARS else ''}"
        for i, r in enumerate(results, start=1)
    )
    return f"Based on the documents you've uploaded, here's what I found:\n\n{sections}"


class ScanChatAssistant:
    """Answers questions about the documents of one scan."""

    def __init__(self, gateway=None, prompt_registry=None):
        self.gateway = gateway
        self.prompt_registry = prompt_registry

    def chat(
        self,
        query: str,
        *,
        documents: list[dict],
        company: dict | None = None,
        document_status: str = "",
        conversation_history: list[dict] | None = None,
        format_instructions: str = DEFAULT_FORMAT_INSTRUCTIONS,
    ) -> dict:
        """
        Returns:
            dict with keys: message, results, query, error
        """
        result = {"message": "", "results": [], "query": query, "error": None}
        if not query or not query.strip():
            result["error"] = "Missing query parameter"
            return result

        results = rank_sections(query, document_sections(documents))
        result["results"] = results
        if not results and not document_status:
            result["message"] = NO_RESULTS_MESSAGE
            return result

        parts = []
        if document_status:
            parts.append(document_status)
        if company and "Company Information" not in document_status:
            parts.append(
                "### Company Information\n"
                + "\n".join(f"- **{label}:** {company[key]}" for key, label in (
                    ("name", "Company Name"), ("website", "Website"), ("country", "Country"),
                    ("industry", "Industry"), ("description", "Description"),
                ) if company.get(key))
            )
        if results:
            parts.append("Document Content:\n" + "\n\n".join(
                f"Document section {i}:\n{r['text']}" for i, r in enumerate(results, start=1)
            ))

        rendered = self.prompt_registry.render(
            "scan_chat",
            format_instructions=format_instructions or DEFAULT_FORMAT_INSTRUCTIONS,
            context="\n\n".join(parts),
            message=query,
        )
        history = [
            {"role": m["role"], "content": m["content"]}
            for m in (conversation_history or [])
            if isinstance(m, dict) and m.get("role") in ("user", "assistant") and m.get("content")
        ]
        system = [m for m in rendered if m["role"] == "system"]
        user = [m for m in rendered if m["role"] != "system"]

        if self.gateway:
            try:
                llm_response = self.gateway.chat(messages=system + history + user, purpose="scan_chat")
                result["message"] = llm_response.get("content", "")
                return result
            except Exception as exc:
                logger.error("ScanChatAssistant LLM call failed: %s", exc)
        else:
            logger.warning("ScanChatAssistant has no LLM gateway")

        if results:
            result["message"] = _raw_message(results)
        else:
            result["message"] = NO_RESULTS_MESSAGE
        return result
