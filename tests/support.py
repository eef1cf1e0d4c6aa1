"""Test database, fake AI collaborators and store helpers shared by the tests."""
import hashlib
import re

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import event, func, select
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles

from inspectai.config import settings
from inspectai.exceptions import UpstreamError
from inspectai.integrations.ai.photo_fetcher import PhotoPayload
from inspectai.models import FeedbackEmbedding, PhotoFeedback

# --- SQLite compatibility: compile PostgreSQL types for SQLite ---

@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "VARCHAR(36)"


@compiles(Vector, "sqlite")
def _compile_vector_sqlite(type_, compiler, **kw):
    return "TEXT"


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# --- Fake AI collaborators ---

_TOKEN = re.compile(r"[a-z0-9]+")


class FakeEmbedder:
    """Deterministic bag-of-words embedder.

    Texts sharing many words land close together, identical texts embed to the
    identical vector.
    """

    def __init__(self, dimension: int | None = None):
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        vector = np.zeros(self.dimension)
        for token in _TOKEN.findall(text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        norm = np.linalg.norm(vector)
        if norm:
            vector = vector / norm
        return vector.tolist()


class FailingEmbedder(FakeEmbedder):
    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        raise UpstreamError("Embedding request timed out")


class ScriptedLLM:
    """Vision client returning a canned reply (or raising a canned error)."""

    def __init__(self, reply: str | None = None, error: Exception | None = None):
        self.model = "fake-vision-1"
        self.reply = reply if reply is not None else (
            '{"description": "Exposed rebar with corrosion on the slab underside.",'
            ' "defectTags": ["rebar corrosion", "spalling"], "severity": "High",'
            ' "recommendations": "Treat rebar and restore concrete cover.", "confidence": 0.82}'
        )
        self.error = error
        self.calls: list[dict] = []

    async def generate_vision(self, system_prompt, text_blocks, photo=None, max_tokens=350, temperature=0.25):
        self.calls.append({
            "system_prompt": system_prompt,
            "text_blocks": text_blocks,
            "photo": photo,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.error is not None:
            raise self.error
        return self.reply


async def fake_fetch_photo(url: str):
    return PhotoPayload(base64_data="aGVsbG8=", mime_type="image/png")


async def unreachable_photo(url: str):
    return None


# --- Store helpers ---

async def count_rows(model) -> int:
    async with test_session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar() or 0


async def load_feedback(feedback_id) -> PhotoFeedback | None:
    async with test_session_factory() as session:
        return await session.get(PhotoFeedback, feedback_id, populate_existing=True)


async def load_embedding(feedback_id) -> FeedbackEmbedding | None:
    async with test_session_factory() as session:
        return (await session.execute(
            select(FeedbackEmbedding).where(FeedbackEmbedding.feedback_id == feedback_id)
        )).scalar_one_or_none()


async def load_all_feedback() -> list[PhotoFeedback]:
    async with test_session_factory() as session:
        return list((await session.execute(select(PhotoFeedback))).scalars().all())
