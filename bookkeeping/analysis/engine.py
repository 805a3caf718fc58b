"""
Analysis engine — one document in, one ``AnalysisResult`` out.

    bytes + metadata
      → prompt content (PDF text / image data URL)
      → LLM call (bounded by timeout)
      → validating parse

Dispatch failures propagate as ``AnalysisDispatchError``; anything wrong with
the *answer* comes back as a result with ``parse_error`` set.
"""

import logging

from bookkeeping import config
from bookkeeping.analysis.extract import build_document_parts
from bookkeeping.analysis.parser import parse_analysis_response
from bookkeeping.analysis.prompts import SYSTEM_PROMPT, user_prompt
from bookkeeping.llm import client as llm
from bookkeeping.models import AnalysisResult

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return llm.is_configured()


async def analyze(
    data: bytes,
    filename: str,
    document_type: str,
    company: str,
    month: int,
    year: int,
) -> AnalysisResult:
    logger.info(
        "Analyzing %s (%d bytes, %s) for %s %d-%02d",
        filename, len(data), document_type, company, year, month,
    )
    content = [{"type": "text", "text": user_prompt(filename, document_type, company, month, year)}]
    content.extend(build_document_parts(data, filename))

    response = await llm.call_llm(SYSTEM_PROMPT, content, timeout=config.LLM_TIMEOUT_SECONDS)
    logger.info("LLM response received (%s, %d chars)", response.content_type, len(response.text or ""))

    if response.content_type != "text":
        return AnalysisResult(
            document_type=document_type,
            raw_response=response.text or "",
            parse_error=f"Unexpected response type from model: {response.content_type}",
            model=response.model,
            usage=response.usage,
        )

    return parse_analysis_response(
        response.text,
        fallback_document_type=document_type,
        model=response.model,
        usage=response.usage,
    )
