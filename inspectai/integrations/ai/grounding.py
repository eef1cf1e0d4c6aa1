"""Retrieval grounding for diagnosis generation.

Embeds the inspection context (and the reviewer's current draft, when there is
one), pulls validated descriptions of similar photos from the similarity index
and renders them into the prompt blocks sent to the vision model.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inspectai.config import settings
from inspectai.integrations.ai.embeddings import EmbeddingService
from inspectai.integrations.ai.similarity_index import (
    ExemplarMatch,
    SimilarityIndex,
    similarity_index,
)
from inspectai.schemas.diagnostics import DiagnosticContext

logger = logging.getLogger(__name__)

DIAGNOSIS_SYSTEM_PROMPT = """You are a building inspection engineer specialised in construction defects.
Analyse the supplied photo and produce a precise technical diagnosis.

Answer with a single valid JSON object with the keys:
- description: technical description of at most 280 characters; do not start with "The image shows".
- defectTags: list of identified defects (strings).
- severity: one of ["Low", "Medium", "High", "Critical"].
- recommendations: recommended actions in at most 200 characters.
- confidence: number between 0 and 1 expressing confidence in the diagnosis.

Use objective language and technical terms. Take the inspection context into account.
If no defect is visible, still describe the general condition and set severity to "Low".
"""


@dataclass
class Grounding:
    summary: str
    exemplars: list[ExemplarMatch] = field(default_factory=list)


def grounding_query_text(context: DiagnosticContext) -> str:
    summary = context.context_summary()
    draft = (context.current_draft_text or "").strip()
    if draft:
        return f"{summary}\nCurrent description: {draft}"
    return summary


def format_exemplars(exemplars: list[ExemplarMatch]) -> str:
    blocks = []
    for index, ex in enumerate(exemplars, start=1):
        tags = f"Defects: {', '.join(ex.tags)}" if ex.tags else "Defects: not informed"
        blocks.append(
            f"EXAMPLE {index} (similarity {ex.similarity * 100:.1f}%):\n{ex.text}\n{tags}"
        )
    return "\n\n".join(blocks)


def build_prompt_blocks(grounding: Grounding, draft_text: str | None) -> list[str]:
    """Render the user-turn text blocks: context + exemplars, then the draft."""
    lines = ["Inspection context:", grounding.summary]
    if grounding.exemplars:
        lines += ["", f"Similar validated examples:\n{format_exemplars(grounding.exemplars)}"]
    lines += ["", "Return only valid JSON as specified. Do not include any other text."]

    draft = (draft_text or "").strip()
    draft_block = (
        f"Current description provided by the user (reference only, may be improved): {draft}"
        if draft
        else "No description provided by the user."
    )
    return ["\n".join(lines), draft_block]


class RetrievalGrounding:
    """Context embedding + nearest-neighbour exemplar lookup."""

    def __init__(
        self,
        embedder: EmbeddingService,
        index: SimilarityIndex | None = None,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ):
        self.embedder = embedder
        self.index = index or similarity_index
        self.top_k = settings.RETRIEVAL_TOP_K if top_k is None else top_k
        self.min_similarity = (
            settings.RETRIEVAL_MIN_SIMILARITY if min_similarity is None else min_similarity
        )

    async def retrieve(self, db: AsyncSession, context: DiagnosticContext) -> Grounding:
        """Embed the context and fetch exemplars.

        Embedding failures propagate. A failed similarity search only loses the
        exemplars: generation continues ungrounded.
        """
        summary = context.context_summary()
        query_vector = await self.embedder.embed(grounding_query_text(context))
        try:
            exemplars = await self.index.query(db, query_vector, self.top_k, self.min_similarity)
        except SQLAlchemyError as exc:
            # A failed statement aborts the transaction; clear it for the audit write
            await db.rollback()
            logger.warning("Similarity search failed, continuing without exemplars: %s", exc)
            return Grounding(summary=summary, exemplars=[])
        logger.info(
            "Grounding retrieved %d exemplar(s) (k=%d, min_similarity=%.2f)",
            len(exemplars), self.top_k, self.min_similarity,
        )
        return Grounding(summary=summary, exemplars=exemplars)
