"""Photo feedback ledger ORM model.

One row per diagnostic description of a photo, AI-generated or written by a
reviewer. Rows are never deleted: a reviewer edit forks a new row pointing at
the one it replaces through ``parent_feedback_id``.
"""
import enum
import uuid

from sqlalchemy import JSON, Boolean, Float, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inspectai.models.base import Base, TimestampMixin, UUIDMixin, pg_enum


class FeedbackOrigin(str, enum.Enum):
    AI = "ai"
    USER = "user"


class PhotoFeedback(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "photo_feedback"

    photo_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    group_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    inspection_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    origin: Mapped[FeedbackOrigin] = mapped_column(
        pg_enum(FeedbackOrigin, name="feedback_origin"), nullable=False
    )
    validated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Only AI-origin rows carry a confidence
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(
        ARRAY(String).with_variant(JSON(), "sqlite"), nullable=True
    )
    parent_feedback_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("photo_feedback.id"), nullable=True
    )
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    # JSONB is not mutation-tracked: always assign a new dict
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    # Relationships
    embedding = relationship("FeedbackEmbedding", back_populates="feedback", uselist=False)

    @property
    def superseded(self) -> bool:
        return bool((self.metadata_ or {}).get("supersededByUser"))

    def __repr__(self):
        return f"<PhotoFeedback(id={self.id}, photo_id={self.photo_id}, origin={self.origin.value})>"
