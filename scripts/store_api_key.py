"""Save a model API key in the system_settings table.

Keys in the environment always win; the stored key is the fallback used when
OPENAI_API_KEY / ANTHROPIC_API_KEY are unset.

Usage (from the project root):
    OPENAI_API_KEY=sk-... python scripts/store_api_key.py --provider openai --check
    python scripts/store_api_key.py --provider claude --key sk-ant-...

The script:
  1. Reads the key from --key or the provider's environment variable.
  2. Unwraps it the same way the service does (JSON strings, quotes, objects).
  3. With --check (OpenAI only), embeds a short text to prove the key works.
  4. Inserts or updates the system_settings row.
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path

# Windows: asyncpg requires SelectorEventLoop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Allow imports from inspectai/ without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from inspectai.database import async_session_factory, engine
from inspectai.exceptions import UpstreamError
from inspectai.integrations.ai.credentials import (
    ANTHROPIC_KEY_SETTING,
    OPENAI_KEY_SETTING,
    normalize_api_key,
)
from inspectai.integrations.ai.embeddings import EmbeddingService
from inspectai.models.system_setting import SystemSetting

_PROVIDERS = {
    "openai": (OPENAI_KEY_SETTING, "OPENAI_API_KEY"),
    "claude": (ANTHROPIC_KEY_SETTING, "ANTHROPIC_API_KEY"),
}


async def store(setting_key: str, api_key: str) -> None:
    async with async_session_factory() as session:
        row = (await session.execute(
            select(SystemSetting).where(SystemSetting.key == setting_key)
        )).scalar_one_or_none()
        if row is None:
            session.add(SystemSetting(key=setting_key, value={"value": api_key}))
        else:
            row.value = {"value": api_key}
        await session.commit()


async def main(provider: str, raw_key: str | None, check: bool) -> int:
    setting_key, env_var = _PROVIDERS[provider]
    api_key = normalize_api_key(raw_key or os.environ.get(env_var))
    if not api_key:
        print(f"ERROR: pass --key or set {env_var}.")
        return 1

    if check and provider == "openai":
        try:
            await EmbeddingService(api_key=api_key).embed("connectivity check")
        except UpstreamError as exc:
            print(f"ERROR: key rejected: {exc.detail}")
            return 1
        print("Key verified against the embeddings API.")

    try:
        await store(setting_key, api_key)
    finally:
        await engine.dispose()

    print(f"Saved {setting_key} (…{api_key[-4:]}).")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Store a model API key in system_settings")
    parser.add_argument("--provider", choices=sorted(_PROVIDERS), default="openai")
    parser.add_argument("--key", default=None, help="API key (defaults to the provider's env var)")
    parser.add_argument("--check", action="store_true", help="verify the key before saving")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.provider, args.key, args.check)))
