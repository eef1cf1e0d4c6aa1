"""Re-embed validated feedback whose similarity-index vector is missing.

A save whose embedding step fails keeps its ledger record but stays out of
retrieval until the next save. This script repairs those gaps.

Usage (from the project root):
    python scripts/reindex_feedback.py              # only records without a vector
    python scripts/reindex_feedback.py --all        # every current validated record
    python scripts/reindex_feedback.py --limit 200

Prerequisites:
    - DB is running and migrated (alembic upgrade head)
    - OPENAI_API_KEY is set in .env, or saved with scripts/store_api_key.py
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Windows: asyncpg requires SelectorEventLoop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Allow imports from inspectai/ without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from inspectai.config import settings
from inspectai.database import async_session_factory, engine
from inspectai.exceptions import AppException
from inspectai.services.validation_service import validation_service


async def main(include_indexed: bool, limit: int | None) -> int:
    try:
        async with async_session_factory() as session:
            indexed, failed = await validation_service.reindex_stale(
                session, include_indexed=include_indexed, limit=limit
            )
    except AppException as exc:
        print(f"ERROR: {exc.detail}")
        return 1
    finally:
        await engine.dispose()

    print("─" * 60)
    print(f"Embedding model : {settings.EMBEDDING_MODEL} ({settings.EMBEDDING_DIMENSION} dims)")
    print(f"Indexed         : {indexed}")
    print(f"Failed          : {failed}")
    print("─" * 60)
    return 1 if failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--all", action="store_true", help="re-embed records that already have a vector")
    parser.add_argument("--limit", type=int, default=None, help="stop after this many records")
    args = parser.parse_args()

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(main(args.all, args.limit)))
