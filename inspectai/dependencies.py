"""FastAPI dependency injection utilities."""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.database import async_session_factory
from inspectai.services.diagnosis_service import DiagnosisService, diagnosis_service
from inspectai.services.validation_service import ValidationService, validation_service


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_diagnosis_service() -> DiagnosisService:
    return diagnosis_service


def get_validation_service() -> ValidationService:
    return validation_service
