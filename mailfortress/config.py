"""Centralized configuration for the MailFortress backend.

Typed constants with environment overrides and safe defaults, so the app
starts without any env configuration. Credentials are read through functions
so a .env loaded after import is still honoured.
"""

from __future__ import annotations

import os

# --- App ---
APP_NAME: str = "MailFortress"
APP_VERSION: str = "1.0.0"
ENV: str = os.getenv("MAILFORTRESS_ENV", "development")
HOST: str = os.getenv("MAILFORTRESS_HOST", "127.0.0.1")
PORT: int = int(os.getenv("MAILFORTRESS_PORT", "8000"))

# --- LLM ---
LLM_DEFAULT_MODEL: str = os.getenv("MAILFORTRESS_LLM_MODEL", "gemini-2.5-flash")
LLM_TIMEOUT_SECONDS: float = float(os.getenv("MAILFORTRESS_LLM_TIMEOUT", "30"))
LLM_REST_ENDPOINTS: tuple[str, ...] = tuple(
    url.strip()
    for url in os.getenv(
        "MAILFORTRESS_LLM_REST_ENDPOINTS",
        "https://generativelanguage.googleapis.com/v1/models/{model}:generateContent,"
        "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
    ).split(",")
    if url.strip()
)
GEMINI_LOCATION: str = os.getenv("GEMINI_LOCATION", "us-central1")

# --- Triage ---
SPAM_CONFIDENCE_THRESHOLD: float = float(os.getenv("MAILFORTRESS_SPAM_THRESHOLD", "0.75"))
SPAM_DEFAULT_CONFIDENCE: float = 0.5
PROCESS_BATCH_LIMIT: int = int(os.getenv("MAILFORTRESS_PROCESS_BATCH_LIMIT", "50"))
BATCH_MAX_WORKERS: int = int(os.getenv("MAILFORTRESS_BATCH_MAX_WORKERS", "4"))
PROMPT_BODY_MAX_CHARS: int = 8000
UNWRAP_MAX_PASSES: int = 5

# --- Storage ---
EMAILS_TABLE: str = "emails"
PROMPTS_TABLE: str = "prompts"
DB_RETRY_MAX: int = int(os.getenv("MAILFORTRESS_DB_RETRY_MAX", "3"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("MAILFORTRESS_DB_RETRY_MAX_DELAY", "4.0"))

# --- Mailbox ---
MAILBOX_ADDRESS: str = os.getenv("MAILFORTRESS_MAILBOX_ADDRESS", "me@mailfortress.app")
SENT_CATEGORY: str = "Sent"
SPAM_CATEGORY: str = "Spam"
INBOX_CATEGORY: str = "Inbox"


def llm_api_key() -> str | None:
    """Gemini API key, first match wins."""
    for name in ("GENAI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"):
        value = os.getenv(name)
        if value:
            return value
    return None


def google_cloud_project() -> str | None:
    return os.getenv("GOOGLE_CLOUD_PROJECT") or None


def supabase_url() -> str | None:
    return os.getenv("SUPABASE_URL") or None


def supabase_key() -> str | None:
    for name in ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY", "SUPABASE_ANON_KEY"):
        value = os.getenv(name)
        if value:
            return value
    return None
