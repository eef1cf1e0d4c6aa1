"""Async SQLAlchemy engine and session factory."""
import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from inspectai.config import settings

logger = logging.getLogger(__name__)


def engine_connect_args(url: str) -> dict:
    """Driver arguments bounding every statement, similarity searches included."""
    if url.startswith("postgresql+asyncpg"):
        return {"command_timeout": settings.DB_COMMAND_TIMEOUT}
    return {}


engine = create_async_engine(
    settings.DATABASE_URL,
    connect_args=engine_connect_args(settings.DATABASE_URL),
    # Off by default: echo prints every bound embedding vector in full
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)


# ── Slow Query Logging ──────────────────────────────────────────────────

@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _start_query_timer(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_times", []).append(time.perf_counter())


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    starts = conn.info.get("query_start_times")
    if not starts:
        return
    elapsed_ms = (time.perf_counter() - starts.pop()) * 1000
    if elapsed_ms < settings.SLOW_QUERY_THRESHOLD_MS:
        return
    kind = "similarity search" if "<=>" in statement else "query"
    logger.warning(
        "Slow %s: %.1fms - %s",
        kind,
        elapsed_ms,
        " ".join(statement.split())[:200],
    )


async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
