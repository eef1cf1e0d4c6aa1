"""Model API credentials.

Keys come from the environment first and fall back to the ``system_settings``
table, where administrators may have saved them in several shapes (plain
string, JSON string, double-encoded string, or an object wrapping the key).
"""
import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.config import settings
from inspectai.exceptions import ConfigurationError
from inspectai.models.system_setting import SystemSetting

logger = logging.getLogger(__name__)

OPENAI_KEY_SETTING = "openai_api_key"
ANTHROPIC_KEY_SETTING = "anthropic_api_key"

_WRAPPER_FIELDS = ("value", "apiKey", "key")


def normalize_api_key(value: Any) -> str | None:
    """Unwrap a stored credential into a bare key string.

    Accepts a plain string, a JSON-encoded string (any depth of encoding), a
    string wrapped in literal quotes, or a dict holding the key under
    ``value``, ``apiKey`` or ``key``. Returns None for anything blank or
    unrecognised.
    """
    if not value:
        return None

    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        try:
            parsed = json.loads(trimmed)
        except ValueError:
            if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] == '"':
                trimmed = trimmed[1:-1].strip()
            return trimmed or None
        return normalize_api_key(parsed)

    if isinstance(value, dict):
        for field in _WRAPPER_FIELDS:
            if field in value:
                return normalize_api_key(value[field])

    return None


@dataclass(frozen=True)
class AICredentials:
    provider: str
    openai_api_key: str
    anthropic_api_key: str | None = None


async def _stored_key(db: AsyncSession, key: str) -> str | None:
    try:
        row = (await db.execute(
            select(SystemSetting).where(SystemSetting.key == key)
        )).scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Failed to read %s from system settings", key)
        return None
    return normalize_api_key(row.value) if row else None


async def resolve_credentials(db: AsyncSession) -> AICredentials:
    """Return usable credentials or raise ConfigurationError.

    Embeddings always go through OpenAI, so its key is required for every
    provider; the Anthropic key is required only when generation uses Claude.
    """
    provider = settings.AI_PROVIDER
    if provider not in ("openai", "claude"):
        raise ConfigurationError(f"Unsupported AI provider: {provider}")

    openai_key = normalize_api_key(settings.OPENAI_API_KEY) or await _stored_key(db, OPENAI_KEY_SETTING)
    if not openai_key:
        raise ConfigurationError(
            "AI service is not configured. Set OPENAI_API_KEY or save the key in system settings."
        )

    anthropic_key = None
    if provider == "claude":
        anthropic_key = (
            normalize_api_key(settings.ANTHROPIC_API_KEY)
            or await _stored_key(db, ANTHROPIC_KEY_SETTING)
        )
        if not anthropic_key:
            raise ConfigurationError(
                "AI provider 'claude' selected but no Anthropic API key is configured."
            )

    return AICredentials(provider=provider, openai_api_key=openai_key, anthropic_api_key=anthropic_key)
