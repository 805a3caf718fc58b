"""
Async wrapper around OpenRouter (OpenAI-compatible) for LLM calls.

A call either returns an ``LLMResponse`` or raises ``AnalysisDispatchError``;
retrying is left to the caller, which knows whether a repeat is worth it.
"""

import asyncio
import logging
from typing import Any

import openai
from pydantic import BaseModel, Field

from bookkeeping import config
from bookkeeping.exceptions import AnalysisDispatchError, AnalysisNotConfiguredError

logger = logging.getLogger(__name__)


class LLMResponse(BaseModel):
    content_type: str = "text"
    text: str | None = None
    model: str | None = None
    usage: dict[str, Any] = Field(default_factory=dict)


def is_configured() -> bool:
    return bool(config.OPENAI_API_KEY)


async def call_llm(
    system: str,
    content: list[dict],
    model: str | None = None,
    temperature: float = 0,
    max_tokens: int | None = None,
    timeout: float | None = None,
) -> LLMResponse:
    """Send one system + user turn and return the assistant's answer."""
    if not is_configured():
        raise AnalysisNotConfiguredError()

    model = model or config.LLM_MODEL
    timeout = timeout if timeout is not None else config.LLM_TIMEOUT_SECONDS

    try:
        return await asyncio.wait_for(
            _create_completion(system, content, model, temperature, max_tokens or config.LLM_MAX_TOKENS),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise AnalysisDispatchError(f"LLM call timed out after {timeout:g}s") from e
    except (openai.APITimeoutError, openai.APIConnectionError) as e:
        raise AnalysisDispatchError(f"LLM connection failed: {e}") from e
    except openai.RateLimitError as e:
        raise AnalysisDispatchError(f"LLM rate limit exceeded: {e}") from e
    except openai.InternalServerError as e:
        raise AnalysisDispatchError(f"LLM provider error: {e}") from e
    except openai.APIError as e:
        # auth, bad request, permission: a repeat call would fail the same way
        raise AnalysisDispatchError(f"LLM request rejected: {e}", retryable=False) from e


async def _create_completion(
    system: str,
    content: list[dict],
    model: str,
    temperature: float,
    max_tokens: int,
) -> LLMResponse:
    async with openai.AsyncOpenAI(
        api_key=config.OPENAI_API_KEY,
        base_url=config.OPENAI_BASE_URL,
        max_retries=0,
    ) as client:
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    usage = response.usage.model_dump() if response.usage else {}
    message = response.choices[0].message if response.choices else None
    if message is None or message.content is None:
        kind = "tool_calls" if message is not None and message.tool_calls else "empty"
        return LLMResponse(content_type=kind, model=response.model, usage=usage)
    return LLMResponse(
        content_type="text",
        text=message.content.strip(),
        model=response.model,
        usage=usage,
    )
