"""
Tests — company insights and the data-room chat.

Coverage:
    1. Objectives: deduplicated, status "to be approved", stored on the company
    2. Scoring criteria: low / medium / high for one objective, nothing stored
    3. Company research: report stored on the company details
    4. Scan chat: keyword-ranked document sections, fixed answer without any,
       raw sections when the LLM fails
    5. Generator errors surface as 502

LLM calls are answered by the local stub provider unless a fake is injected.
"""

import pytest

from ora.ai.assistants.scan_chat import (
    NO_RESULTS_MESSAGE,
    ScanChatAssistant,
    rank_sections,
    split_sections,
)
from ora.ai.prompt_registry import PromptRegistry
from ora.core.exceptions import UpstreamError
from ora.services import document_service, insight_service, tenant_service

BASE = "/api/tenants/by-slug/workspaces/scans"

INVOICE_TEXT = (
    "Invoices are typed by hand from the warehouse delivery notes. "
    "Customers wait up to three weeks for an invoice and disputes are common."
)


@pytest.fixture()
def scan_args(tenant, workspace, scan):
    return tenant["slug"], workspace["id"], scan["id"]


@pytest.fixture()
def qs(scan_args):
    slug, ws, scan_id = scan_args
    return {"slug": slug, "workspace_id": ws, "scan_id": scan_id}


class FailingGenerator:
    def generate(self, *args, **kwargs):
        return {"objectives": [], "scoring_criteria": None, "error": "quota exceeded"}

    def research(self, company):
        return {"research": "", "error": "quota exceeded"}


class BrokenGateway:
    def chat(self, messages, **kwargs):
        raise RuntimeError("timeout")


class TestObjectives:
    def test_generated_objectives_replace_stored(self, scan_args, lifecycle):
        objectives = insight_service.generate_objectives(*scan_args)
        names = [o["name"] for o in objectives]
        assert names == ["Customer Satisfaction", "Cost Reduction",
                         "Operational Excellence", "Employee Engagement"]
        assert {o["status"] for o in objectives} == {"to be approved"}
        assert tenant_service.get_strategic_objectives(*scan_args) == objectives

    def test_generator_error_keeps_stored(self, scan_args):
        before = tenant_service.get_strategic_objectives(*scan_args)
        with pytest.raises(UpstreamError):
            insight_service.generate_objectives(*scan_args, generator=FailingGenerator())
        assert tenant_service.get_strategic_objectives(*scan_args) == before

    def test_api(self, client, qs):
        res = client.post(f"{BASE}/generate-objectives", json={
            "tenant_slug": qs["slug"], "workspace_id": qs["workspace_id"], "scan_id": qs["scan_id"],
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert len(body["objectives"]) == 4

    def test_api_missing_scan_is_400(self, client, qs):
        res = client.post(f"{BASE}/generate-objectives", json={"tenant_slug": qs["slug"]})
        assert res.status_code == 400


class TestScoringCriteria:
    def test_levels_for_objective(self, scan_args):
        criteria = insight_service.generate_scoring_criteria(
            *scan_args, "Customer Satisfaction", "Happier customers",
        )
        assert set(criteria) == {"low", "medium", "high"}
        assert "Customer Satisfaction" in criteria["high"]

    def test_not_stored(self, scan_args):
        before = tenant_service.get_strategic_objectives(*scan_args)
        insight_service.generate_scoring_criteria(*scan_args, "Customer Satisfaction")
        assert tenant_service.get_strategic_objectives(*scan_args) == before

    def test_strategy_summaries_feed_the_prompt(self, scan_args):
        document_service.upload_document(*scan_args, {
            "document_type": "Strategy Document", "file_name": "strategy.pdf",
            "content": "Grow recurring revenue in the service business.",
        })
        seen = {}

        class Recorder:
            def generate(self, company, lifecycles, strategy_documents, name, description):
                seen["types"] = [d["document_type"] for d in strategy_documents]
                return {"scoring_criteria": {"low": "l", "medium": "m", "high": "h"}, "error": None}

        insight_service.generate_scoring_criteria(*scan_args, "Growth", generator=Recorder())
        assert seen["types"] == ["Strategy Document"]

    def test_api_requires_objective_name(self, client, qs):
        res = client.post(f"{BASE}/generate-scoring-criteria", json=qs)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Missing required parameters"

    def test_api(self, client, qs):
        res = client.post(f"{BASE}/generate-scoring-criteria", json={
            **qs, "objective_name": "Cost Reduction", "objective_description": "Lower cost per order",
        })
        assert res.status_code == 200
        assert res.get_json()["scoring_criteria"]["low"].startswith("Marginal effect on Cost Reduction")


class TestCompanyResearch:
    def test_report_is_stored(self, scan_args):
        research = insight_service.research_company(*scan_args)
        assert research.startswith("## Company Overview\n\nAcme Scan is profiled")
        assert tenant_service.get_company_details(*scan_args)["research"] == research

    def test_failure_is_502(self, client, app, qs):
        app._ai_company_researcher = FailingGenerator()
        try:
            res = client.post(f"{BASE}/company-research", query_string=qs)
        finally:
            del app._ai_company_researcher
        assert res.status_code == 502
        assert res.get_json()["code"] == "ERR_UPSTREAM"

    def test_api(self, client, qs):
        res = client.post(f"{BASE}/company-research", query_string=qs)
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Company research generated successfully"
        assert "## Industry & Market Position" in body["research"]


class TestSectionRanking:
    def test_short_text_is_one_section(self):
        assert split_sections("one two three") == ["one two three"]

    def test_long_text_overlaps(self):
        words = [f"w{i}" for i in range(500)]
        sections = split_sections(" ".join(words), max_words=300, overlap=40)
        assert len(sections) == 2
        assert sections[1].split()[0] == "w260"
        assert sections[1].split()[-1] == "w499"

    def test_unrelated_sections_dropped(self):
        sections = [
            {"text": "invoices are late", "document_id": "a"},
            {"text": "the warehouse is full", "document_id": "b"},
        ]
        ranked = rank_sections("late invoices", sections)
        assert [s["document_id"] for s in ranked] == ["a"]
        assert ranked[0]["score"] > 0


class TestScanChat:
    def test_answers_from_matching_document(self, scan_args):
        document_service.upload_document(*scan_args, {
            "document_type": "Process Documentation", "file_name": "billing.docx",
            "content": INVOICE_TEXT,
        })
        result = insight_service.scan_chat(*scan_args, "Why are invoices late?")
        assert result["message"].startswith("### Answer")
        assert [r["file_name"] for r in result["results"]] == ["billing.docx"]
        assert result["query"] == "Why are invoices late?"

    def test_no_documents_and_no_status(self, scan_args):
        result = insight_service.scan_chat(*scan_args, "What about payroll?")
        assert result == {"message": NO_RESULTS_MESSAGE, "results": [], "query": "What about payroll?"}

    def test_document_status_alone_reaches_the_model(self, scan_args):
        result = insight_service.scan_chat(
            *scan_args, "What is missing?", document_status="You still need 7 more documents",
        )
        assert result["message"].startswith("### Answer")
        assert result["results"] == []

    def test_llm_failure_lists_raw_sections(self):
        assistant = ScanChatAssistant(gateway=BrokenGateway(), prompt_registry=PromptRegistry())
        result = assistant.chat(
            "invoices", documents=[{"id": "d1", "document_type": "X", "content": INVOICE_TEXT}],
        )
        assert result["message"].startswith("Based on the documents you've uploaded")
        assert "**Document section 1:**" in result["message"]

    def test_history_precedes_question(self):
        captured = {}

        class Recorder:
            def chat(self, messages, **kwargs):
                captured["roles"] = [m["role"] for m in messages]
                return {"content": "ok"}

        assistant = ScanChatAssistant(gateway=Recorder(), prompt_registry=PromptRegistry())
        assistant.chat(
            "invoices",
            documents=[{"id": "d1", "document_type": "X", "content": INVOICE_TEXT}],
            conversation_history=[{"role": "user", "content": "hi"},
                                  {"role": "assistant", "content": "hello"},
                                  {"role": "tool", "content": "dropped"}],
        )
        assert captured["roles"] == ["system", "user", "assistant", "user"]

    def test_api_missing_query(self, client, qs):
        res = client.post(f"{BASE}/chat", query_string=qs, json={"query": ""})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Missing query parameter"

    def test_api(self, client, qs, scan_args):
        document_service.upload_document(*scan_args, {
            "document_type": "Process Documentation", "file_name": "billing.docx",
            "content": INVOICE_TEXT,
        })
        res = client.post(f"{BASE}/chat", query_string=qs, json={
            "query": "invoice disputes", "conversationHistory": [],
        })
        assert res.status_code == 200
        body = res.get_json()
        assert len(body["results"]) == 1
        assert body["results"][0]["document_type"] == "Process Documentation"
