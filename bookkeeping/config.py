"""
Central configuration — reads environment variables and provides defaults.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ── LLM (OpenRouter / any OpenAI-compatible endpoint) ────────────────────────
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY") or os.getenv("OPENROUTER_API_KEY", "")
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://openrouter.ai/api/v1")
LLM_MODEL: str = os.getenv("LLM_MODEL", "anthropic/claude-sonnet-4")
LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "4096"))
LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

# ── Analysis retry policy ─────────────────────────────────────────────────────
MAX_ANALYSIS_ATTEMPTS: int = int(os.getenv("MAX_ANALYSIS_ATTEMPTS", "3"))
RETRY_BACKOFF_SECONDS: float = float(os.getenv("RETRY_BACKOFF_SECONDS", "1"))

# ── Database ──────────────────────────────────────────────────────────────────
DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/bookkeeping.db")

# ── Blob storage ──────────────────────────────────────────────────────────────
# "internal" = chunked store inside the database, "external" = Supabase Storage
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "internal")
BLOB_CHUNK_SIZE: int = int(os.getenv("BLOB_CHUNK_SIZE", str(255 * 1024)))
BLOB_TIMEOUT_SECONDS: float = float(os.getenv("BLOB_TIMEOUT_SECONDS", "30"))

SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE: str = os.getenv("SUPABASE_SERVICE_ROLE") or os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_BUCKET: str = os.getenv("SUPABASE_BUCKET", "cadgroup-uploads")

# ── Analysis ──────────────────────────────────────────────────────────────────
MAX_DOCUMENT_TOKENS: int = int(os.getenv("MAX_DOCUMENT_TOKENS", "60000"))
RAW_RESPONSE_PREVIEW_CHARS: int = int(os.getenv("RAW_RESPONSE_PREVIEW_CHARS", "500"))

# ── Uploads ───────────────────────────────────────────────────────────────────
MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024)))
