"""Download inspection photos for inline submission to the vision model."""
import base64
import logging
from dataclasses import dataclass

import httpx

from inspectai.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class PhotoPayload:
    base64_data: str
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"


async def fetch_photo(
    url: str,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PhotoPayload | None:
    """Fetch a photo and return it base64-encoded, or None if it is unreachable.

    An unreachable photo is not fatal: generation continues with text-only
    grounding.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout or settings.PHOTO_FETCH_TIMEOUT, transport=transport
        ) as client:
            resp = await client.get(url, follow_redirects=True)
            resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning("Photo download failed with HTTP %d: %s", exc.response.status_code, url)
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("Photo download failed (%s): %s", type(exc).__name__, url)
        return None

    mime_type = resp.headers.get("content-type", DEFAULT_MIME_TYPE).split(";")[0].strip()
    return PhotoPayload(
        base64_data=base64.b64encode(resp.content).decode("ascii"),
        mime_type=mime_type or DEFAULT_MIME_TYPE,
    )
