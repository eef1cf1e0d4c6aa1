"""Photo feedback ledger data access layer."""
import uuid as _uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.models.embedding import FeedbackEmbedding
from inspectai.models.feedback import PhotoFeedback


async def get_by_id(db: AsyncSession, feedback_id: _uuid.UUID) -> PhotoFeedback | None:
    return (await db.execute(
        select(PhotoFeedback).where(PhotoFeedback.id == feedback_id)
    )).scalar_one_or_none()


async def list_by_photo(db: AsyncSession, photo_id: str) -> list[PhotoFeedback]:
    rows = (await db.execute(
        select(PhotoFeedback)
        .where(PhotoFeedback.photo_id == photo_id)
        .order_by(PhotoFeedback.created_at.asc())
    )).scalars().all()
    return list(rows)


async def create(db: AsyncSession, feedback: PhotoFeedback) -> PhotoFeedback:
    db.add(feedback)
    await db.flush()
    return feedback


async def update(db: AsyncSession, feedback: PhotoFeedback) -> PhotoFeedback:
    await db.flush()
    return feedback


async def list_validated(db: AsyncSession, unindexed_only: bool = True) -> list[PhotoFeedback]:
    """Validated records, oldest first; optionally only those without a vector."""
    stmt = (
        select(PhotoFeedback)
        .outerjoin(FeedbackEmbedding, FeedbackEmbedding.feedback_id == PhotoFeedback.id)
        .where(PhotoFeedback.validated.is_(True))
        .order_by(PhotoFeedback.created_at.asc())
    )
    if unindexed_only:
        stmt = stmt.where(FeedbackEmbedding.id.is_(None))
    return list((await db.execute(stmt)).scalars().all())
