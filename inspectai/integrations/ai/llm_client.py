"""Vision LLM client with a Claude/GPT provider abstraction.

Both providers receive the same request shape: a system prompt, a list of
text blocks and an optional inline photo. The reply is returned as raw text;
parsing it into a diagnosis is the caller's job.
"""
import logging

from inspectai.config import settings
from inspectai.exceptions import UpstreamError
from inspectai.integrations.ai.photo_fetcher import PhotoPayload

logger = logging.getLogger(__name__)


class LLMClient:
    """Unified vision client supporting OpenAI and Claude providers.

    Usage:
        client = LLMClient(provider="openai", api_key=key)
        raw = await client.generate_vision(system_prompt, ["context..."], photo)
    """

    def __init__(self, provider: str | None = None, api_key: str = ""):
        self.provider = provider or settings.AI_PROVIDER
        self.api_key = api_key

        if self.provider == "openai":
            self.model = settings.VISION_MODEL
        elif self.provider == "claude":
            self.model = settings.CLAUDE_VISION_MODEL
        else:
            raise ValueError(f"Unsupported AI provider: {self.provider}")

    async def generate_vision(
        self,
        system_prompt: str,
        text_blocks: list[str],
        photo: PhotoPayload | None = None,
        max_tokens: int = 350,
        temperature: float = 0.25,
    ) -> str:
        """Generate a JSON completion for the given context and photo.

        Raises UpstreamError on timeouts, API errors and empty replies.
        """
        if self.provider == "claude":
            text = await self._generate_claude(system_prompt, text_blocks, photo, max_tokens, temperature)
        else:
            text = await self._generate_openai(system_prompt, text_blocks, photo, max_tokens, temperature)

        if not text or not text.strip():
            raise UpstreamError("Vision model returned an empty response")
        return text

    # ── OpenAI ──

    async def _generate_openai(
        self,
        system_prompt: str,
        text_blocks: list[str],
        photo: PhotoPayload | None,
        max_tokens: int,
        temperature: float,
    ) -> str:
        import openai

        content: list[dict] = [{"type": "text", "text": block} for block in text_blocks]
        if photo is not None:
            content.append({"type": "image_url", "image_url": {"url": photo.data_url}})

        client = openai.AsyncOpenAI(
            api_key=self.api_key,
            timeout=settings.AI_REQUEST_TIMEOUT,
            max_retries=0,
        )
        try:
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": content},
                ],
            )
        except openai.APITimeoutError as exc:
            raise UpstreamError("Vision model request timed out") from exc
        except openai.OpenAIError as exc:
            logger.error("OpenAI generation failed: %s", exc)
            raise UpstreamError(f"Vision model request failed: {exc}") from exc
        finally:
            await client.close()

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    # ── Claude (Anthropic) ──

    async def _generate_claude(
        self,
        system_prompt: str,
        text_blocks: list[str],
        photo: PhotoPayload | None,
        max_tokens: int,
        temperature: float,
    ) -> str:
        import anthropic

        content: list[dict] = []
        if photo is not None:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": photo.mime_type,
                    "data": photo.base64_data,
                },
            })
        content.extend({"type": "text", "text": block} for block in text_blocks)

        client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            timeout=settings.AI_REQUEST_TIMEOUT,
            max_retries=0,
        )
        try:
            message = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APITimeoutError as exc:
            raise UpstreamError("Vision model request timed out") from exc
        except anthropic.AnthropicError as exc:
            logger.error("Claude generation failed: %s", exc)
            raise UpstreamError(f"Vision model request failed: {exc}") from exc
        finally:
            await client.close()

        return "".join(block.text for block in message.content if block.type == "text")
