"""Load source images for generation projects."""

import base64
import binascii
import logging
from typing import Optional

import httpx

from ..errors import GenerationError

logger = logging.getLogger(__name__)


async def load_image_bytes(url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
    """
    Resolve an image reference to raw bytes.

    Accepts data URLs, http(s) URLs and bare base64 strings.
    """
    if not url:
        raise GenerationError("Image URL is required")

    if url.startswith("data:"):
        _, _, payload = url.partition(",")
        return _decode_base64(payload)

    if url.startswith(("http://", "https://")):
        owns_client = client is None
        client = client or httpx.AsyncClient(timeout=60.0)
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            raise GenerationError(f"Failed to fetch image: {e}") from e
        finally:
            if owns_client:
                await client.aclose()

    return _decode_base64(url)


def _decode_base64(payload: str) -> bytes:
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise GenerationError(f"Invalid image data: {e}") from e
