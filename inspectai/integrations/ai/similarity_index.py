"""Similarity index over validated feedback embeddings.

PostgreSQL deployments rank with the pgvector cosine distance operator. Any
other dialect (the SQLite test database) ranks exactly in-process with numpy.
Both paths honour the same contract: at most ``k`` matches, each at or above
``min_similarity``, best match first.
"""
import logging
import uuid
from dataclasses import dataclass, field

import numpy as np
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.models.base import utcnow
from inspectai.models.embedding import FeedbackEmbedding
from inspectai.models.feedback import FeedbackOrigin, PhotoFeedback

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class ExemplarMatch:
    feedback_id: uuid.UUID
    text: str
    similarity: float
    origin: FeedbackOrigin
    context_text: str
    tags: list[str] = field(default_factory=list)


def cosine_similarity(a, b) -> float:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class SimilarityIndex:
    async def upsert(
        self,
        db: AsyncSession,
        feedback_id: uuid.UUID,
        vector: list[float],
        context_text: str,
    ) -> None:
        """Store the vector of a feedback row, overwriting any previous one."""
        dialect = db.get_bind().dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            await self._upsert_orm(db, feedback_id, vector, context_text)
            return

        stmt = insert(FeedbackEmbedding).values(
            id=uuid.uuid4(),
            feedback_id=feedback_id,
            embedding=vector,
            context_text=context_text,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[FeedbackEmbedding.feedback_id],
            set_={
                "embedding": stmt.excluded.embedding,
                "context_text": stmt.excluded.context_text,
                "updated_at": utcnow(),
            },
        )
        await db.execute(stmt)
        await db.flush()

    async def _upsert_orm(self, db, feedback_id, vector, context_text) -> None:
        existing = (await db.execute(
            select(FeedbackEmbedding).where(FeedbackEmbedding.feedback_id == feedback_id)
        )).scalar_one_or_none()
        if existing is None:
            db.add(FeedbackEmbedding(feedback_id=feedback_id, embedding=vector, context_text=context_text))
        else:
            existing.embedding = vector
            existing.context_text = context_text
        await db.flush()

    async def query(
        self,
        db: AsyncSession,
        vector: list[float],
        k: int,
        min_similarity: float,
    ) -> list[ExemplarMatch]:
        """Return the k nearest validated records with similarity >= min_similarity."""
        if k <= 0:
            return []
        if db.get_bind().dialect.name == "postgresql":
            return await self._query_pgvector(db, vector, k, min_similarity)
        return await self._query_exact(db, vector, k, min_similarity)

    async def _query_pgvector(self, db, vector, k, min_similarity) -> list[ExemplarMatch]:
        distance = FeedbackEmbedding.embedding.cosine_distance(vector)
        stmt = (
            select(
                FeedbackEmbedding.feedback_id,
                FeedbackEmbedding.context_text,
                PhotoFeedback.description,
                PhotoFeedback.origin,
                PhotoFeedback.tags,
                (1 - distance).label("similarity"),
            )
            .join(PhotoFeedback, PhotoFeedback.id == FeedbackEmbedding.feedback_id)
            .where(
                distance <= 1 - min_similarity,
                PhotoFeedback.metadata_["supersededByUser"].astext.is_distinct_from("true"),
            )
            .order_by(distance)
            .limit(k)
        )
        rows = (await db.execute(stmt)).all()
        return [
            ExemplarMatch(
                feedback_id=row.feedback_id,
                text=row.description,
                similarity=float(row.similarity),
                origin=row.origin,
                context_text=row.context_text,
                tags=list(row.tags or []),
            )
            for row in rows
        ]

    async def _query_exact(self, db, vector, k, min_similarity) -> list[ExemplarMatch]:
        rows = (await db.execute(
            select(FeedbackEmbedding, PhotoFeedback)
            .join(PhotoFeedback, PhotoFeedback.id == FeedbackEmbedding.feedback_id)
        )).all()

        matches = []
        for embedding, feedback in rows:
            if feedback.superseded:
                continue
            similarity = cosine_similarity(vector, embedding.embedding)
            if similarity < min_similarity:
                continue
            matches.append(ExemplarMatch(
                feedback_id=feedback.id,
                text=feedback.description,
                similarity=similarity,
                origin=feedback.origin,
                context_text=embedding.context_text,
                tags=list(feedback.tags or []),
            ))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug("Exact similarity scan: %d candidates, %d matches", len(rows), len(matches))
        return matches[:k]


similarity_index = SimilarityIndex()
