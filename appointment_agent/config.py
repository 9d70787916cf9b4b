"""Centralized configuration for the appointment agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/appointment-agent/<VARIABLE_NAME>``.

Secrets are resolved lazily through :func:`get_secret` so that a business
running on one model backend never needs the other backend's API key.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415  lazy: boto3 is an optional extra

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/appointment-agent/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def get_secret(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /appointment-agent/{name} (AWS)."
    )


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ── LLM backends ────────────────────────────────────────────────────
DEFAULT_AI_PROVIDER: str = os.getenv("DEFAULT_AI_PROVIDER", "ANTHROPIC")
ANTHROPIC_MODEL_NAME: str = os.getenv("ANTHROPIC_MODEL_NAME", "claude-sonnet-4-5")
OPENAI_MODEL_NAME: str = os.getenv("OPENAI_MODEL_NAME", "gpt-4o")
MODEL_TEMPERATURE: float = _float_env("MODEL_TEMPERATURE", 0.3)
MODEL_MAX_TOKENS: int = _int_env("MODEL_MAX_TOKENS", 1024)

# ── Orchestration limits ────────────────────────────────────────────
MAX_TOOL_ROUNDS: int = _int_env("MAX_TOOL_ROUNDS", 6)
HISTORY_LIMIT: int = _int_env("HISTORY_LIMIT", 20)
SLOT_GRANULARITY_MINUTES: int = _int_env("SLOT_GRANULARITY_MINUTES", 30)
MAX_SLOTS_PRESENTED: int = _int_env("MAX_SLOTS_PRESENTED", 8)
EXTERNAL_CALL_TIMEOUT_SECONDS: float = _float_env("EXTERNAL_CALL_TIMEOUT_SECONDS", 30.0)
INBOUND_DEDUP_TTL_SECONDS: float = _float_env("INBOUND_DEDUP_TTL_SECONDS", 3600.0)

# ── Google Calendar ─────────────────────────────────────────────────
GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_ID: str = os.getenv("GOOGLE_CALENDAR_ID", "primary")

# ── WhatsApp ────────────────────────────────────────────────────────
META_GRAPH_API_VERSION: str = os.getenv("META_GRAPH_API_VERSION", "v21.0")
WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
META_APP_SECRET: str = os.getenv("META_APP_SECRET", "")

# ── Data ────────────────────────────────────────────────────────────
BUSINESS_SEED_PATH: str = os.getenv("BUSINESS_SEED_PATH", "")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _int_env("SERVER_PORT", 8000)
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
