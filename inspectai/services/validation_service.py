"""Validation reconciler for reviewer-finalised descriptions.

A save event lands in one of three states:

- S0, no prior feedback: insert a new validated user record.
- S1, prior feedback kept as-is (``was_edited`` false): promote the prior
  record in place; its id is preserved, so repeating the call is a pure update.
- S2, prior feedback edited: flag the prior record as superseded (its text is
  left untouched for audit) and insert a validated user record whose parent is
  the prior one. Every S2 call forks a new node.

The ledger write is committed before the record is re-embedded; a failure to
index afterwards only leaves the similarity index stale until the next save.
"""
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.exceptions import AppException, PersistenceError, UpstreamError, ValidationError
from inspectai.integrations.ai.credentials import resolve_credentials
from inspectai.integrations.ai.embeddings import EmbeddingService
from inspectai.integrations.ai.similarity_index import SimilarityIndex, similarity_index
from inspectai.models.base import utcnow
from inspectai.models.feedback import FeedbackOrigin, PhotoFeedback
from inspectai.repositories import feedback_repository
from inspectai.schemas.diagnostics import (
    RecordValidatedDescriptionRequest,
    ValidationResult,
    ValidationSummary,
)

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Validated description recorded."


def _clean_tags(tags: list[str] | None) -> list[str] | None:
    if tags is None:
        return None
    return [t.strip() for t in tags if t and t.strip()]


def embedding_texts(
    request: RecordValidatedDescriptionRequest, final_text: str
) -> tuple[str, str]:
    """Return (text to embed, context text stored next to the vector)."""
    summary = request.summary or ValidationSummary()
    parts = request.summary_parts()
    if summary.severity:
        parts.append(f"Severity: {summary.severity}")
    header = " | ".join(parts)

    context_text = "\n".join(p for p in (header, final_text) if p)
    recommendations = (summary.recommendations or "").strip()
    if recommendations:
        return f"{context_text}\nRecommendations: {recommendations}", context_text
    return context_text, context_text


def request_for_record(feedback: PhotoFeedback) -> RecordValidatedDescriptionRequest:
    """Rebuild the save request of a ledger record from its stored metadata."""
    metadata = feedback.metadata_ or {}
    return RecordValidatedDescriptionRequest.from_metadata(
        metadata,
        photo_id=feedback.photo_id,
        final_text=feedback.description,
        summary=ValidationSummary(
            severity=metadata.get("severity"),
            recommendations=metadata.get("recommendations"),
        ),
    )


class ValidationService:
    def __init__(
        self,
        embedder: EmbeddingService | None = None,
        index: SimilarityIndex | None = None,
    ):
        self._embedder = embedder
        self.index = index or similarity_index

    async def _embedder_for(self, db: AsyncSession) -> EmbeddingService:
        if self._embedder is not None:
            return self._embedder
        credentials = await resolve_credentials(db)
        return EmbeddingService(api_key=credentials.openai_api_key)

    async def record(
        self, db: AsyncSession, request: RecordValidatedDescriptionRequest
    ) -> ValidationResult:
        try:
            return await self._record(db, request)
        except AppException as exc:
            raise type(exc)(f"Could not save description: {exc.detail}") from exc

    async def _record(
        self, db: AsyncSession, request: RecordValidatedDescriptionRequest
    ) -> ValidationResult:
        photo_id = (request.photo_id or "").strip()
        final_text = (request.final_text or "").strip()
        if not photo_id:
            raise ValidationError("photo_id is required")
        if not final_text:
            raise ValidationError("final_text is required")

        embedder = await self._embedder_for(db)

        prior = None
        if request.prior_feedback_id is not None:
            prior = await feedback_repository.get_by_id(db, request.prior_feedback_id)
            if prior is None:
                raise ValidationError(f"feedback {request.prior_feedback_id} not found")
            if prior.photo_id and prior.photo_id != photo_id:
                raise ValidationError(
                    f"feedback {prior.id} belongs to photo {prior.photo_id}, not {photo_id}"
                )
            if prior.superseded and not request.was_edited:
                raise ValidationError(
                    f"feedback {prior.id} was superseded by "
                    f"{prior.metadata_.get('supersededById')}; validate that record instead"
                )

        metadata = self._validated_metadata(request)
        try:
            if prior is None:
                target = await self._insert(db, request, photo_id, final_text, metadata)
                state = "S0"
            elif not request.was_edited:
                target = await self._promote(db, prior, request, photo_id, final_text, metadata)
                state = "S1"
            else:
                target = await self._fork(db, prior, request, photo_id, final_text, metadata)
                state = "S2"
            target_id = target.id
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Ledger write failed for photo %s", photo_id)
            raise PersistenceError(f"ledger write failed: {exc.__class__.__name__}") from exc

        logger.info(
            "Validated description saved for photo %s (%s, feedback=%s, prior=%s)",
            photo_id, state, target_id, request.prior_feedback_id,
        )

        await self._reindex(db, embedder, target_id, request, final_text)
        return ValidationResult(feedback_id=target_id, message=SUCCESS_MESSAGE)

    # ── State transitions ──

    async def _insert(
        self,
        db: AsyncSession,
        request: RecordValidatedDescriptionRequest,
        photo_id: str,
        final_text: str,
        metadata: dict,
        parent: PhotoFeedback | None = None,
    ) -> PhotoFeedback:
        tags = _clean_tags(request.summary.defect_tags if request.summary else None)
        if tags is None and parent is not None:
            tags = list(parent.tags or [])
        feedback = PhotoFeedback(
            photo_id=photo_id,
            group_id=request.group_id or (parent.group_id if parent else None),
            inspection_id=request.inspection_id or (parent.inspection_id if parent else None),
            user_id=request.user_id,
            description=final_text,
            origin=FeedbackOrigin.USER,
            validated=True,
            confidence=None,
            tags=tags or [],
            parent_feedback_id=parent.id if parent else None,
            metadata_=metadata,
        )
        return await feedback_repository.create(db, feedback)

    async def _promote(
        self,
        db: AsyncSession,
        prior: PhotoFeedback,
        request: RecordValidatedDescriptionRequest,
        photo_id: str,
        final_text: str,
        metadata: dict,
    ) -> PhotoFeedback:
        summary = request.summary
        prior.description = final_text
        prior.validated = True
        prior.photo_id = prior.photo_id or photo_id
        prior.group_id = prior.group_id or request.group_id
        prior.inspection_id = prior.inspection_id or request.inspection_id
        prior.user_id = request.user_id or prior.user_id
        if summary is not None:
            tags = _clean_tags(summary.defect_tags)
            if tags is not None:
                prior.tags = tags
            if prior.origin == FeedbackOrigin.AI and summary.confidence is not None:
                prior.confidence = summary.confidence
        prior.metadata_ = {**(prior.metadata_ or {}), **metadata}
        return await feedback_repository.update(db, prior)

    async def _fork(
        self,
        db: AsyncSession,
        prior: PhotoFeedback,
        request: RecordValidatedDescriptionRequest,
        photo_id: str,
        final_text: str,
        metadata: dict,
    ) -> PhotoFeedback:
        child = await self._insert(db, request, photo_id, final_text, metadata, parent=prior)
        prior.photo_id = prior.photo_id or photo_id
        prior.metadata_ = {
            **(prior.metadata_ or {}),
            "supersededByUser": True,
            "supersededById": str(child.id),
        }
        await feedback_repository.update(db, prior)
        return child

    @staticmethod
    def _validated_metadata(request: RecordValidatedDescriptionRequest) -> dict:
        metadata: dict = {
            **request.context_fields(),
            "contextSummary": request.context_summary(),
            "validatedAt": utcnow().isoformat(),
        }
        summary = request.summary
        if summary is not None:
            if summary.severity:
                metadata["severity"] = summary.severity
            if summary.recommendations is not None:
                metadata["recommendations"] = summary.recommendations
            if summary.defect_tags is not None:
                metadata["defectTags"] = _clean_tags(summary.defect_tags)
        return metadata

    # ── Similarity index ──

    async def _reindex(
        self,
        db: AsyncSession,
        embedder: EmbeddingService,
        feedback_id: uuid.UUID,
        request: RecordValidatedDescriptionRequest,
        final_text: str,
    ) -> bool:
        """Embed and upsert the validated text. Failures are logged, never raised."""
        text, context_text = embedding_texts(request, final_text)
        try:
            vector = await embedder.embed(text)
            await self.index.upsert(db, feedback_id, vector, context_text)
            await db.commit()
        except (UpstreamError, SQLAlchemyError, ValueError) as exc:
            await db.rollback()
            logger.error("Feedback %s saved but not indexed: %s", feedback_id, exc)
            return False
        return True

    async def reindex_stale(
        self, db: AsyncSession, include_indexed: bool = False, limit: int | None = None
    ) -> tuple[int, int]:
        """Re-embed validated records whose vector is missing.

        Repairs the index after saves whose embedding step failed. With
        ``include_indexed`` every current validated record is re-embedded,
        e.g. after switching EMBEDDING_MODEL. Returns (indexed, failed).
        """
        embedder = await self._embedder_for(db)
        records = await feedback_repository.list_validated(db, unindexed_only=not include_indexed)
        # Snapshot before the loop: a rollback inside _reindex expires loaded rows
        pending = [
            (record.id, request_for_record(record))
            for record in records
            if not record.superseded
        ][:limit]

        indexed = failed = 0
        for feedback_id, request in pending:
            if await self._reindex(db, embedder, feedback_id, request, request.final_text):
                indexed += 1
            else:
                failed += 1
        logger.info("Reindex finished: %d indexed, %d failed", indexed, failed)
        return indexed, failed


validation_service = ValidationService()
