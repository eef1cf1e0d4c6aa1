"""Feedback embedding ORM model (pgvector)."""
import uuid

from pgvector.sqlalchemy import Vector
from sqlalchemy import ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inspectai.config import settings
from inspectai.models.base import Base, TimestampMixin, UUIDMixin


class FeedbackEmbedding(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "photo_feedback_embeddings"

    # Exactly one vector per feedback row; re-saving overwrites it in place
    feedback_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("photo_feedback.id"), nullable=False, unique=True
    )
    embedding = mapped_column(Vector(settings.EMBEDDING_DIMENSION), nullable=False)
    context_text: Mapped[str] = mapped_column(Text, nullable=False)

    feedback = relationship("PhotoFeedback", back_populates="embedding")
