"""
Tests for bookkeeping.llm.client — error mapping around the completion call.
"""

import asyncio

import httpx
import openai
import pytest

from bookkeeping import config
from bookkeeping.exceptions import AnalysisDispatchError, AnalysisNotConfiguredError
from bookkeeping.llm import client
from bookkeeping.llm.client import LLMResponse, call_llm

_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")


def _raising(exc):
    async def fake(*args, **kwargs):
        raise exc
    return fake


class TestCallLLM:
    @pytest.mark.asyncio
    async def test_returns_response(self, monkeypatch):
        async def fake(system, content, model, temperature, max_tokens):
            assert model == config.LLM_MODEL
            assert max_tokens == config.LLM_MAX_TOKENS
            return LLMResponse(text="{}", model=model)

        monkeypatch.setattr(client, "_create_completion", fake)
        resp = await call_llm("system", [{"type": "text", "text": "hi"}])
        assert resp.text == "{}"

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(config, "OPENAI_API_KEY", "")
        with pytest.raises(AnalysisNotConfiguredError) as exc:
            await call_llm("system", [])
        assert exc.value.retryable is False

    @pytest.mark.asyncio
    async def test_timeout(self, monkeypatch):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(client, "_create_completion", slow)
        with pytest.raises(AnalysisDispatchError, match="timed out") as exc:
            await call_llm("system", [], timeout=0.01)
        assert exc.value.retryable is True

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self, monkeypatch):
        monkeypatch.setattr(client, "_create_completion", _raising(openai.APIConnectionError(request=_REQUEST)))
        with pytest.raises(AnalysisDispatchError) as exc:
            await call_llm("system", [])
        assert exc.value.retryable is True

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self, monkeypatch):
        err = openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None)
        monkeypatch.setattr(client, "_create_completion", _raising(err))
        with pytest.raises(AnalysisDispatchError, match="rate limit") as exc:
            await call_llm("system", [])
        assert exc.value.retryable is True

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retryable(self, monkeypatch):
        err = openai.AuthenticationError("bad key", response=httpx.Response(401, request=_REQUEST), body=None)
        monkeypatch.setattr(client, "_create_completion", _raising(err))
        with pytest.raises(AnalysisDispatchError, match="rejected") as exc:
            await call_llm("system", [])
        assert exc.value.retryable is False
