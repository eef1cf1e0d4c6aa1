"""Diagnosis generator producing grounded vision-model descriptions of inspection photos."""
import json
import logging
import re

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.exceptions import AppException, ValidationError
from inspectai.integrations.ai.credentials import resolve_credentials
from inspectai.integrations.ai.embeddings import EmbeddingService
from inspectai.integrations.ai.grounding import (
    DIAGNOSIS_SYSTEM_PROMPT,
    Grounding,
    RetrievalGrounding,
    build_prompt_blocks,
)
from inspectai.integrations.ai.llm_client import LLMClient
from inspectai.integrations.ai.photo_fetcher import PhotoPayload, fetch_photo
from inspectai.integrations.ai.similarity_index import SimilarityIndex, similarity_index
from inspectai.models.feedback import FeedbackOrigin, PhotoFeedback
from inspectai.repositories import feedback_repository
from inspectai.schemas.diagnostics import (
    DESCRIPTION_MAX_CHARS,
    RECOMMENDATIONS_MAX_CHARS,
    DiagnosisSuggestion,
    DiagnosisSummary,
    ExemplarResponse,
    GenerateDiagnosisRequest,
    ModelDiagnosis,
)

logger = logging.getLogger(__name__)

DETAILED_MODE = "detailed"
DETAILED_TEMPERATURE = 0.35
DEFAULT_TEMPERATURE = 0.25
MAX_COMPLETION_TOKENS = 350

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_DATA_URL_PREFIX = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,")


class ParseError(ValueError):
    """Model output did not match the diagnosis schema."""


def parse_model_output(raw: str) -> ModelDiagnosis:
    text = _CODE_FENCE.sub("", raw.strip())
    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ParseError(f"not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError("JSON root is not an object")
    try:
        return ModelDiagnosis.model_validate(payload)
    except PydanticValidationError as exc:
        raise ParseError(str(exc)) from exc


def degraded_diagnosis(raw: str) -> ModelDiagnosis:
    return ModelDiagnosis(
        description=raw.strip() or "No description available.",
        defect_tags=[],
        severity="Medium",
        recommendations="",
        confidence=0.5,
    )


def _truncate(text: str, limit: int) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"


def _inline_photo(image_base64: str) -> PhotoPayload:
    match = _DATA_URL_PREFIX.match(image_base64)
    if match:
        return PhotoPayload(base64_data=image_base64[match.end():], mime_type=match.group("mime"))
    return PhotoPayload(base64_data=image_base64)


class DiagnosisService:
    """Generates a grounded diagnosis and records it in the ledger for audit.

    ``embedder`` and ``llm`` are normally built per call from the resolved
    credentials; passing them in skips credential resolution.
    """

    def __init__(
        self,
        embedder: EmbeddingService | None = None,
        llm: LLMClient | None = None,
        index: SimilarityIndex | None = None,
        photo_fetcher=fetch_photo,
    ):
        self._embedder = embedder
        self._llm = llm
        self.index = index or similarity_index
        self.fetch_photo = photo_fetcher

    async def _clients(self, db: AsyncSession) -> tuple[EmbeddingService, LLMClient]:
        if self._embedder is not None and self._llm is not None:
            return self._embedder, self._llm
        credentials = await resolve_credentials(db)
        embedder = self._embedder or EmbeddingService(api_key=credentials.openai_api_key)
        llm = self._llm or LLMClient(
            provider=credentials.provider,
            api_key=(
                credentials.anthropic_api_key
                if credentials.provider == "claude"
                else credentials.openai_api_key
            ),
        )
        return embedder, llm

    async def generate(self, db: AsyncSession, request: GenerateDiagnosisRequest) -> DiagnosisSuggestion:
        try:
            return await self._generate(db, request)
        except AppException as exc:
            raise type(exc)(f"Could not generate diagnosis: {exc.detail}") from exc

    async def _generate(self, db: AsyncSession, request: GenerateDiagnosisRequest) -> DiagnosisSuggestion:
        if not request.photo_url and not request.image_base64:
            raise ValidationError("photo not provided; send photo_url or image_base64")

        embedder, llm = await self._clients(db)

        grounding = await RetrievalGrounding(embedder, self.index).retrieve(db, request)

        photo = await self._load_photo(request)
        temperature = DETAILED_TEMPERATURE if request.mode == DETAILED_MODE else DEFAULT_TEMPERATURE

        raw = await llm.generate_vision(
            DIAGNOSIS_SYSTEM_PROMPT,
            build_prompt_blocks(grounding, request.current_draft_text),
            photo,
            max_tokens=MAX_COMPLETION_TOKENS,
            temperature=temperature,
        )

        try:
            diagnosis = parse_model_output(raw)
        except ParseError as exc:
            logger.warning("Model output did not match the diagnosis schema, degrading: %s", exc)
            diagnosis = degraded_diagnosis(raw)

        description = _truncate(diagnosis.description, DESCRIPTION_MAX_CHARS)
        summary = DiagnosisSummary(
            defect_tags=[t.strip() for t in diagnosis.defect_tags if t and t.strip()],
            severity=diagnosis.severity,
            recommendations=_truncate(diagnosis.recommendations, RECOMMENDATIONS_MAX_CHARS),
            confidence=diagnosis.confidence,
        )

        feedback_id = await self._record_audit(
            db, request, description, summary, grounding,
            model=getattr(llm, "model", None), temperature=temperature,
        )

        return DiagnosisSuggestion(
            description=description,
            summary=summary,
            feedback_id=feedback_id,
            exemplars=[
                ExemplarResponse(
                    feedback_id=ex.feedback_id,
                    text=ex.text,
                    similarity_percent=round(ex.similarity * 100, 1),
                    origin=ex.origin,
                    tags=ex.tags,
                )
                for ex in grounding.exemplars
            ],
        )

    async def _load_photo(self, request: GenerateDiagnosisRequest) -> PhotoPayload | None:
        if request.image_base64:
            return _inline_photo(request.image_base64)
        photo = await self.fetch_photo(request.photo_url)
        if photo is None:
            logger.warning("Photo %s unavailable, continuing with text-only grounding", request.photo_id)
        return photo

    async def _record_audit(
        self,
        db: AsyncSession,
        request: GenerateDiagnosisRequest,
        description: str,
        summary: DiagnosisSummary,
        grounding: Grounding,
        model: str | None,
        temperature: float,
    ):
        """Persist the AI suggestion. Failures are logged, never raised."""
        feedback = PhotoFeedback(
            photo_id=request.photo_id,
            group_id=request.group_id,
            inspection_id=request.inspection_id,
            user_id=request.user_id,
            description=description,
            origin=FeedbackOrigin.AI,
            validated=False,
            confidence=summary.confidence,
            tags=summary.defect_tags,
            model=model,
            temperature=temperature,
            metadata_={
                "severity": summary.severity,
                "recommendations": summary.recommendations,
                "contextSummary": grounding.summary,
                "exemplarIdsUsed": [
                    {"id": str(ex.feedback_id), "similarity": ex.similarity}
                    for ex in grounding.exemplars
                ],
            },
        )
        try:
            await feedback_repository.create(db, feedback)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Could not record AI feedback for photo %s", request.photo_id)
            return None

        logger.info(
            "Recorded AI feedback %s for photo %s (severity=%s, exemplars=%d)",
            feedback.id, request.photo_id, summary.severity, len(grounding.exemplars),
        )
        return feedback.id


diagnosis_service = DiagnosisService()
