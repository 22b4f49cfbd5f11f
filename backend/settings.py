# settings.py
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"


def _load_env():
    from dotenv import load_dotenv
    load_dotenv(dotenv_path=ENV_PATH, override=False)


_load_env()


def _to_bool(s, default=False):
    if s is None:
        return default
    return str(s).strip().lower() in ("1", "true", "yes", "on")


def _to_list(s, default):
    if not s:
        return list(default)
    return [p.strip() for p in str(s).split(",") if p.strip()]


OPENAI_API_KEY  = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL    = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
LLM_TIMEOUT     = float(os.getenv("LLM_TIMEOUT", "120"))

PORT            = int(os.getenv("PORT", "3001"))
CORS_ORIGINS    = _to_list(os.getenv("CORS_ORIGINS"), ["*"])

# Bulk run policy
EXTRACTION_CONCURRENCY = int(os.getenv("EXTRACTION_CONCURRENCY", "2"))
REQUEST_DELAY          = float(os.getenv("REQUEST_DELAY", "0.5"))
CELL_MAX_RETRIES       = int(os.getenv("CELL_MAX_RETRIES", "2"))
CELL_RETRY_DELAY       = float(os.getenv("CELL_RETRY_DELAY", "1.0"))

# Per-cell rate-limit backoff: RATE_LIMIT_BACKOFF * 2**(n-1) seconds
RATE_LIMIT_RETRIES = int(os.getenv("RATE_LIMIT_RETRIES", "3"))
RATE_LIMIT_BACKOFF = float(os.getenv("RATE_LIMIT_BACKOFF", "2.0"))

MAX_DOCUMENT_CHARS = int(os.getenv("MAX_DOCUMENT_CHARS", "150000"))

LOG_PROMPTS = _to_bool(os.getenv("LOG_PROMPTS"), False)


def masked_key() -> str:
    return (OPENAI_API_KEY or "")[:8]
