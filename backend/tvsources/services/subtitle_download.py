"""
Subtitle download and SRT to WebVTT conversion.
"""
import logging
import re
from typing import Optional

import httpx

from tvsources.models.subtitle import OpenSubtitlesProvider, SubtitleCandidate
from tvsources.services.errors import (
    DecodingError,
    DownloadError,
    NoDownloadLinkError,
    TransportError,
)
from tvsources.services.http import create_client, decode_json, fetch

logger = logging.getLogger(__name__)

VTT_HEADER = "WEBVTT\n\n"

# 00:00:00,000 -> 00:00:00.000
SRT_TIMESTAMP = re.compile(r"(\d{2}:\d{2}:\d{2}),(\d{3})")


def srt_to_vtt(content: str) -> str:
    """Prefix the WebVTT header and switch timestamp millis to a dot."""
    return VTT_HEADER + SRT_TIMESTAMP.sub(r"\1.\2", content)


def normalize_to_vtt(content: str, fmt: str) -> str:
    """Convert to WebVTT when the source is SRT; other formats pass through."""
    if (fmt or "").lower() == "srt":
        return srt_to_vtt(content)
    return content


class SubtitleDownloader:
    """Fetch subtitle files referenced by search candidates."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def download(self, candidate: SubtitleCandidate) -> str:
        """Return the raw subtitle text for a candidate."""
        if self._client is not None:
            return await self._download(self._client, candidate)
        async with create_client() as client:
            return await self._download(client, candidate)

    async def _download(self, client: httpx.AsyncClient, candidate: SubtitleCandidate) -> str:
        if candidate.kind == "opensubtitles":
            link = await self._resolve_opensubtitles_link(client, candidate)
            return await self.download_url(client, link)
        if candidate.kind in ("custom", "local"):
            return await self.download_url(client, candidate.download_ref)
        raise DownloadError(f"Unknown provider kind: {candidate.kind}")

    async def _resolve_opensubtitles_link(self, client: httpx.AsyncClient, candidate: SubtitleCandidate) -> str:
        """Exchange a file id for a temporary direct link."""
        provider = candidate.provider
        if not isinstance(provider, OpenSubtitlesProvider):
            raise DownloadError("OpenSubtitles candidate carries no provider settings")

        try:
            response = await fetch(
                client,
                "POST",
                f"{provider.api_url.rstrip('/')}/download",
                json={"file_id": candidate.download_ref},
                headers={"Api-Key": provider.api_key or "", "Content-Type": "application/json"},
            )
            data = decode_json(response)
        except DecodingError as e:
            raise DownloadError(f"Download failed: {e}") from e
        except TransportError as e:
            raise DownloadError(f"Download failed: {e}", status_code=e.status_code) from e

        link = data.get("link") if isinstance(data, dict) else None
        if not link:
            raise NoDownloadLinkError("No download link provided")
        logger.debug(f"Resolved OpenSubtitles file {candidate.download_ref}")
        return link

    async def download_url(self, client: httpx.AsyncClient, url: str) -> str:
        """Fetch a subtitle file as text."""
        try:
            response = await fetch(client, "GET", url)
        except TransportError as e:
            raise DownloadError(f"Download failed: {e}", status_code=e.status_code) from e
        return response.text
