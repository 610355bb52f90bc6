"""
HTTP helpers shared by the channel loader and subtitle providers.

Every network call goes through ``fetch`` so transport failures surface
as ``TransportError`` and bad bodies as ``DecodingError``.
"""
import logging
from typing import Any, Optional

import httpx

from tvsources.config import get_settings
from tvsources.services.errors import DecodingError, TransportError

logger = logging.getLogger(__name__)


def create_client(timeout: Optional[float] = None) -> httpx.AsyncClient:
    """Build the shared async client with configured timeout and user agent."""
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else settings.http_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
    )


async def fetch(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Issue a request; raise TransportError on network failure or non-2xx status."""
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise TransportError(f"{method} {url} failed: {e}") from e

    if not response.is_success:
        raise TransportError(
            f"Server returned error: {response.status_code}",
            status_code=response.status_code,
        )
    return response


def decode_json(response: httpx.Response) -> Any:
    """Decode a JSON body."""
    try:
        return response.json()
    except ValueError as e:
        raise DecodingError(f"Invalid JSON from {response.request.url}: {e}") from e
