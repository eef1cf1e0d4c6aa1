"""Diagnostics API endpoints: grounded generation, validation and ledger reads."""
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.dependencies import get_db, get_diagnosis_service, get_validation_service
from inspectai.exceptions import NotFoundError
from inspectai.repositories import feedback_repository
from inspectai.schemas.common import APIResponse
from inspectai.schemas.diagnostics import (
    FeedbackResponse,
    GenerateDiagnosisRequest,
    RecordValidatedDescriptionRequest,
)
from inspectai.services.diagnosis_service import DiagnosisService
from inspectai.services.validation_service import ValidationService

router = APIRouter()


@router.post("/generate", response_model=APIResponse)
async def generate_diagnosis(
    body: GenerateDiagnosisRequest,
    db: AsyncSession = Depends(get_db),
    service: DiagnosisService = Depends(get_diagnosis_service),
):
    """Generate a grounded diagnostic description for an inspection photo."""
    suggestion = await service.generate(db, body)
    return {"status": "success", "data": suggestion.model_dump(mode="json")}


@router.post("/validate", response_model=APIResponse)
async def record_validated_description(
    body: RecordValidatedDescriptionRequest,
    db: AsyncSession = Depends(get_db),
    service: ValidationService = Depends(get_validation_service),
):
    """Record a reviewer-finalised description and re-index it."""
    result = await service.record(db, body)
    return {
        "status": "success",
        "data": {"feedback_id": str(result.feedback_id)},
        "message": result.message,
    }


@router.get("/feedback/{feedback_id}", response_model=APIResponse)
async def get_feedback(
    feedback_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    feedback = await feedback_repository.get_by_id(db, feedback_id)
    if feedback is None:
        raise NotFoundError(f"Feedback {feedback_id} not found")
    return {"status": "success", "data": FeedbackResponse.model_validate(feedback).model_dump(mode="json")}


@router.get("/photos/{photo_id}/feedback", response_model=APIResponse)
async def list_photo_feedback(
    photo_id: str,
    db: AsyncSession = Depends(get_db),
):
    """All ledger records of a photo, oldest first (shows supersession lineage)."""
    records = await feedback_repository.list_by_photo(db, photo_id)
    return {
        "status": "success",
        "data": [FeedbackResponse.model_validate(r).model_dump(mode="json") for r in records],
    }
