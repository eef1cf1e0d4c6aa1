"""SQLAlchemy ORM models."""
from inspectai.models.base import Base, TimestampMixin, UUIDMixin
from inspectai.models.feedback import PhotoFeedback, FeedbackOrigin
from inspectai.models.embedding import FeedbackEmbedding
from inspectai.models.system_setting import SystemSetting

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "PhotoFeedback",
    "FeedbackOrigin",
    "FeedbackEmbedding",
    "SystemSetting",
]
