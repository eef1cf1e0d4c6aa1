"""Key/value system settings ORM model."""
from typing import Any

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from inspectai.models.base import Base, TimestampMixin, UUIDMixin


class SystemSetting(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    # Stored as entered by administrators: plain string, JSON string or object
    value: Mapped[Any] = mapped_column(JSONB, nullable=True)
