"""Text embedding service for vector search (pgvector)."""
import logging

from inspectai.config import settings
from inspectai.exceptions import UpstreamError

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 8000  # token limit safety


class EmbeddingService:
    """Generate text embeddings through the OpenAI embeddings API.

    Every call runs under ``settings.AI_REQUEST_TIMEOUT`` with SDK retries
    disabled; callers decide whether to retry an ``UpstreamError``.
    """

    def __init__(self, api_key: str, model: str | None = None, dimension: int | None = None):
        self.api_key = api_key
        self.model = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION

    async def embed(self, text: str) -> list[float]:
        """Generate the embedding vector for a single text."""
        import openai

        client = openai.AsyncOpenAI(
            api_key=self.api_key,
            timeout=settings.AI_REQUEST_TIMEOUT,
            max_retries=0,
        )
        try:
            response = await client.embeddings.create(
                model=self.model,
                input=text[:MAX_INPUT_CHARS],
                dimensions=self.dimension,
            )
        except openai.APITimeoutError as exc:
            logger.warning("Embedding request timed out after %.0fs", settings.AI_REQUEST_TIMEOUT)
            raise UpstreamError("Embedding request timed out") from exc
        except openai.OpenAIError as exc:
            logger.error("Embedding request failed: %s", exc)
            raise UpstreamError(f"Embedding request failed: {exc}") from exc
        finally:
            await client.close()

        vector = response.data[0].embedding if response.data else None
        if not vector or len(vector) != self.dimension:
            raise UpstreamError("Embedding API returned an invalid vector")
        return vector
