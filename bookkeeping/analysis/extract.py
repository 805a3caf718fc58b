"""
Turn uploaded bytes into prompt content for the LLM.

PDFs are sent as extracted text (capped by token count); images are sent as
base64 data URLs.
"""

import base64
import io
import logging
import os

import tiktoken
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from bookkeeping import config

logger = logging.getLogger(__name__)

# Use a tokenizer compatible with common models
_encoder = tiktoken.get_encoding("cl100k_base")

_IMAGE_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def count_tokens(text: str) -> int:
    """Return the token count for *text*."""
    if not text:
        return 0
    return len(_encoder.encode(text))


def truncate_to_tokens(text: str, max_tokens: int | None = None) -> str:
    """Cut *text* to at most *max_tokens* tokens."""
    max_tokens = max_tokens if max_tokens is not None else config.MAX_DOCUMENT_TOKENS
    tokens = _encoder.encode(text)
    if len(tokens) <= max_tokens:
        return text
    logger.warning("Document text truncated from %d to %d tokens", len(tokens), max_tokens)
    return _encoder.decode(tokens[:max_tokens])


def extract_pdf_text(data: bytes) -> str:
    """Return the text layer of a PDF, one block per page."""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError) as e:
        logger.warning("PDF text extraction failed: %s", e)
        return ""
    return "\n\n".join(
        f"--- page {i} ---\n{text.strip()}" for i, text in enumerate(pages, 1) if text.strip()
    )


def image_mime_type(filename: str) -> str | None:
    return _IMAGE_TYPES.get(os.path.splitext(filename)[1].lower())


def build_document_parts(data: bytes, filename: str) -> list[dict]:
    """Build the chat-completion content parts that carry the document."""
    mime = image_mime_type(filename)
    if mime:
        encoded = base64.b64encode(data).decode("ascii")
        return [{"type": "image_url", "image_url": {"url": f"data:{mime};base64,{encoded}"}}]

    if filename.lower().endswith(".pdf"):
        text = extract_pdf_text(data)
    else:
        text = data.decode("utf-8", errors="replace")

    if not text.strip():
        text = "(no extractable text in this document)"
    return [{"type": "text", "text": f"Document content:\n\n{truncate_to_tokens(text)}"}]
