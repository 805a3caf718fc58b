"""
Tests for bookkeeping.analysis.engine and .extract — prompt content and the
LLM round trip. The LLM call is mocked.
"""

import json

import pytest

from bookkeeping import config
from bookkeeping.analysis import engine
from bookkeeping.analysis.extract import (
    build_document_parts,
    count_tokens,
    extract_pdf_text,
    truncate_to_tokens,
)
from bookkeeping.exceptions import AnalysisDispatchError
from bookkeeping.llm.client import LLMResponse


# ── helper fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def sample_pdf(tmp_path):
    """Create a minimal one-page bank statement PDF."""
    from reportlab.pdfgen import canvas as rl_canvas
    pdf_path = str(tmp_path / "murphy_web_services_2024_03.pdf")
    c = rl_canvas.Canvas(pdf_path)
    c.drawString(100, 750, "BPI Statement of Account - March 2024")
    c.drawString(100, 730, "03/05 MERALCO BILLS PAYMENT 4,500.25")
    c.showPage()
    c.save()
    with open(pdf_path, "rb") as f:
        return f.read()


@pytest.fixture
def captured(monkeypatch):
    """Patch call_llm with a fake that records its arguments."""
    calls = []
    reply = {"response": LLMResponse(text=json.dumps({"transactions": [], "insights": []}), model="test-model")}

    async def fake_call_llm(system, content, **kwargs):
        calls.append({"system": system, "content": content, **kwargs})
        return reply["response"]

    monkeypatch.setattr("bookkeeping.llm.client.call_llm", fake_call_llm)
    return calls, reply


# ── extraction ───────────────────────────────────────────────────────────────

class TestExtract:
    def test_pdf_text(self, sample_pdf):
        text = extract_pdf_text(sample_pdf)
        assert "MERALCO" in text
        assert text.startswith("--- page 1 ---")

    def test_unreadable_pdf_gives_placeholder(self):
        parts = build_document_parts(b"not really a pdf", "scan.pdf")
        assert parts[0]["type"] == "text"
        assert "no extractable text" in parts[0]["text"]

    def test_image_becomes_data_url(self):
        parts = build_document_parts(b"\x89PNG fake", "receipt.PNG")
        assert parts[0]["type"] == "image_url"
        assert parts[0]["image_url"]["url"].startswith("data:image/png;base64,")

    def test_plain_text_document(self):
        parts = build_document_parts("Invoice #42 total ₱1,200".encode(), "invoice.txt")
        assert "Invoice #42" in parts[0]["text"]

    def test_truncate_to_tokens(self):
        text = "word " * 500
        cut = truncate_to_tokens(text, max_tokens=50)
        assert count_tokens(cut) <= 50
        assert truncate_to_tokens("short", max_tokens=50) == "short"

    def test_count_tokens_empty(self):
        assert count_tokens("") == 0


# ── engine ───────────────────────────────────────────────────────────────────

class TestAnalyze:
    @pytest.mark.asyncio
    async def test_prompt_carries_metadata_and_text(self, captured, sample_pdf):
        calls, _ = captured
        result = await engine.analyze(
            sample_pdf, "march.pdf", "bank_statement", "murphy_web_services", 3, 2024
        )

        assert result.parse_error is None
        assert result.model == "test-model"
        call = calls[0]
        assert "JSON" in call["system"]
        assert call["timeout"] == config.LLM_TIMEOUT_SECONDS
        prompt = call["content"][0]["text"]
        assert "murphy_web_services" in prompt
        assert "march.pdf" in prompt
        assert "MERALCO" in call["content"][1]["text"]

    @pytest.mark.asyncio
    async def test_unparsable_answer_is_result_not_error(self, captured):
        _, reply = captured
        reply["response"] = LLMResponse(text="Sorry, this image is too blurry.", model="test-model")

        result = await engine.analyze(b"img", "r.jpg", "receipt", "acme", 1, 2024)
        assert result.parse_error
        assert result.raw_response == "Sorry, this image is too blurry."
        assert result.document_type == "receipt"

    @pytest.mark.asyncio
    async def test_non_text_answer(self, captured):
        _, reply = captured
        reply["response"] = LLMResponse(content_type="tool_calls", model="test-model")

        result = await engine.analyze(b"x", "a.txt", "other", "acme", 1, 2024)
        assert "tool_calls" in result.parse_error
        assert result.transactions == []

    @pytest.mark.asyncio
    async def test_dispatch_error_propagates(self, monkeypatch):
        async def failing(system, content, **kwargs):
            raise AnalysisDispatchError("LLM connection failed: refused")

        monkeypatch.setattr("bookkeeping.llm.client.call_llm", failing)
        with pytest.raises(AnalysisDispatchError):
            await engine.analyze(b"x", "a.txt", "other", "acme", 1, 2024)

    def test_is_configured_follows_api_key(self, monkeypatch):
        monkeypatch.setattr(config, "OPENAI_API_KEY", "")
        assert not engine.is_configured()
        monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")
        assert engine.is_configured()
