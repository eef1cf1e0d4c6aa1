"""Diagnosis generation and validation schemas."""
import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inspectai.models.feedback import FeedbackOrigin

Severity = Literal["Low", "Medium", "High", "Critical"]

DESCRIPTION_MAX_CHARS = 280
RECOMMENDATIONS_MAX_CHARS = 200


class DiagnosticContext(BaseModel):
    """Per-request inspection context. Never persisted as its own entity."""

    environment: str | None = None
    system: str | None = None
    element: str | None = None
    status: str | None = None
    property_id: str | None = None
    property_name: str | None = None
    operator_name: str | None = None
    mode: str | None = None
    current_draft_text: str | None = None

    def summary_parts(self) -> list[str]:
        labeled = [
            ("Environment", self.environment),
            ("System", self.system),
            ("Element", self.element),
            ("Status", self.status),
            ("Property", self.property_name),
            ("Operator", self.operator_name),
            ("Mode", self.mode),
        ]
        return [f"{label}: {value.strip()}" for label, value in labeled if value and value.strip()]

    def context_summary(self) -> str:
        parts = self.summary_parts()
        return " | ".join(parts) if parts else "No context"

    def context_fields(self) -> dict[str, str]:
        """Context values kept in ledger metadata (enough to rebuild the summary)."""
        fields = {
            "environment": self.environment,
            "system": self.system,
            "element": self.element,
            "status": self.status,
            "propertyId": self.property_id,
            "propertyName": self.property_name,
            "operatorName": self.operator_name,
            "mode": self.mode,
        }
        return {k: v for k, v in fields.items() if v}

    @classmethod
    def from_metadata(cls, metadata: dict | None, **extra):
        """Inverse of ``context_fields`` for records already in the ledger."""
        metadata = metadata or {}
        return cls(
            environment=metadata.get("environment"),
            system=metadata.get("system"),
            element=metadata.get("element"),
            status=metadata.get("status"),
            property_id=metadata.get("propertyId"),
            property_name=metadata.get("propertyName"),
            operator_name=metadata.get("operatorName"),
            mode=metadata.get("mode"),
            **extra,
        )


# ── GenerateDiagnosis ──


class GenerateDiagnosisRequest(DiagnosticContext):
    photo_id: str | None = None
    photo_url: str | None = None
    image_base64: str | None = None
    group_id: str | None = None
    inspection_id: str | None = None
    user_id: str | None = None


class ModelDiagnosis(BaseModel):
    """Strict shape the vision model must answer with."""

    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(min_length=1)
    defect_tags: list[str] = Field(default_factory=list, alias="defectTags")
    severity: Severity
    recommendations: str = ""
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("description", mode="before")
    @classmethod
    def _strip_description(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("severity", mode="before")
    @classmethod
    def _capitalize_severity(cls, value):
        return value.strip().capitalize() if isinstance(value, str) else value


class DiagnosisSummary(BaseModel):
    defect_tags: list[str] = Field(default_factory=list)
    severity: Severity = "Medium"
    recommendations: str = Field(default="", max_length=RECOMMENDATIONS_MAX_CHARS)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ExemplarResponse(BaseModel):
    feedback_id: uuid.UUID
    text: str
    similarity_percent: float
    origin: FeedbackOrigin
    tags: list[str] = Field(default_factory=list)


class DiagnosisSuggestion(BaseModel):
    description: str = Field(max_length=DESCRIPTION_MAX_CHARS)
    summary: DiagnosisSummary
    feedback_id: uuid.UUID | None = None
    exemplars: list[ExemplarResponse] = Field(default_factory=list)


# ── RecordValidatedDescription ──


class ValidationSummary(BaseModel):
    defect_tags: list[str] | None = None
    severity: Severity | None = None
    recommendations: str | None = None
    confidence: float | None = Field(None, ge=0.0, le=1.0)


class RecordValidatedDescriptionRequest(DiagnosticContext):
    # photo_id/final_text are checked by the service so a missing value is a
    # ValidationError, not a schema error
    photo_id: str | None = None
    final_text: str | None = None
    group_id: str | None = None
    inspection_id: str | None = None
    user_id: str | None = None
    prior_feedback_id: uuid.UUID | None = None
    was_edited: bool = False
    summary: ValidationSummary | None = None


class ValidationResult(BaseModel):
    feedback_id: uuid.UUID
    message: str


# ── Ledger inspection ──


class FeedbackResponse(BaseModel):
    id: uuid.UUID
    photo_id: str | None = None
    group_id: str | None = None
    inspection_id: str | None = None
    user_id: str | None = None
    description: str
    origin: FeedbackOrigin
    validated: bool
    confidence: float | None = None
    tags: list[str] | None = None
    parent_feedback_id: uuid.UUID | None = None
    model: str | None = None
    metadata: dict | None = Field(None, validation_alias="metadata_")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())
