"""
Subtitle search across configured providers.

Every provider listing the requested language is queried in configured
order. Each one yields a ProviderSearchResult; a failing provider is
recorded and logged, never aborting the aggregate.
"""
import logging
from pathlib import PurePosixPath
from typing import Optional

import httpx

from tvsources.models.subtitle import (
    CustomProvider,
    LocalProvider,
    OpenSubtitlesProvider,
    ProviderSearchResult,
    SubtitleCandidate,
    SubtitleProviderConfig,
    SubtitleSearchResult,
)
from tvsources.services.errors import ConfigurationError, ProtocolMismatchError
from tvsources.services.http import create_client, decode_json, fetch
from tvsources.services.store import SubtitleStore

logger = logging.getLogger(__name__)


def _format_from_filename(file_name: str) -> str:
    suffix = PurePosixPath(file_name or "").suffix
    return suffix[1:].lower() if suffix else "srt"


class SubtitleSearchService:
    """Fan a (query, language) search out to every matching provider."""

    def __init__(self, store: SubtitleStore, client: Optional[httpx.AsyncClient] = None):
        self.store = store
        self._client = client

    async def search(
        self,
        query: str,
        language: str,
        providers: Optional[list[SubtitleProviderConfig]] = None,
    ) -> SubtitleSearchResult:
        """
        Search every provider that lists ``language``.

        Args:
            query: Content name or IMDb id
            language: Language code (en, ar, es, ...)
            providers: Restrict the search to these providers instead of
                every configured one

        Raises:
            ConfigurationError: no subtitle servers are configured at all
        """
        servers = await self.store.get_subtitle_servers()
        if not servers:
            raise ConfigurationError("No subtitle servers configured")
        if providers is not None:
            servers = providers

        result = SubtitleSearchResult(query=query, language=language)
        matching = []
        for server in servers:
            if server.supports(language):
                matching.append(server)
            else:
                result.skipped.append(server.id)

        if not matching:
            logger.info(f"No subtitle servers offer language '{language}'")
            return result

        if self._client is not None:
            await self._search_all(self._client, matching, query, language, result)
        else:
            async with create_client() as client:
                await self._search_all(client, matching, query, language, result)

        logger.info(
            f"Subtitle search '{query}' [{language}]: {len(result.candidates)} results, "
            f"{len(result.failures)} failed provider(s)"
        )
        return result

    async def _search_all(self, client, servers, query, language, result: SubtitleSearchResult):
        for server in servers:
            outcome = ProviderSearchResult(provider_id=server.id, provider_name=server.name)
            try:
                outcome.candidates = await self.search_provider(client, server, query, language)
            except Exception as e:
                logger.error(f"Error searching on server {server.name}: {e}")
                outcome.error = str(e) or type(e).__name__
            result.providers.append(outcome)

    async def search_provider(
        self,
        client: httpx.AsyncClient,
        server: SubtitleProviderConfig,
        query: str,
        language: str,
    ) -> list[SubtitleCandidate]:
        """Query a single provider; errors propagate to the caller."""
        if isinstance(server, OpenSubtitlesProvider):
            return await self._search_opensubtitles(client, server, query, language)
        if isinstance(server, CustomProvider):
            return await self._search_custom(client, server, query, language)
        if isinstance(server, LocalProvider):
            return await self._search_local(language)
        return []

    async def _search_opensubtitles(
        self, client: httpx.AsyncClient, server: OpenSubtitlesProvider, query: str, language: str
    ) -> list[SubtitleCandidate]:
        if not server.api_key:
            raise ConfigurationError("OpenSubtitles requires an API key")

        response = await fetch(
            client,
            "GET",
            f"{server.api_url.rstrip('/')}/subtitles",
            params={"query": query, "languages": language},
            headers={"Api-Key": server.api_key, "Content-Type": "application/json"},
        )
        data = decode_json(response)
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []

        candidates = []
        for item in items:
            attributes = item.get("attributes") or {}
            files = attributes.get("files") or []
            if not files:
                logger.debug(f"Skipping OpenSubtitles result without files: {item.get('id')}")
                continue
            first = files[0]
            feature = attributes.get("feature_details") or {}
            candidates.append(SubtitleCandidate(
                provider_result_id=str(first["file_id"]),
                title=attributes.get("release") or feature.get("title") or "",
                language=attributes.get("language") or language,
                download_ref=str(first["file_id"]),
                format=_format_from_filename(first.get("file_name", "")),
                popularity=attributes.get("download_count"),
                kind="opensubtitles",
                provider_id=server.id,
                provider=server,
            ))
        return candidates

    async def _search_custom(
        self, client: httpx.AsyncClient, server: CustomProvider, query: str, language: str
    ) -> list[SubtitleCandidate]:
        headers = {}
        if server.api_key:
            headers["Authorization"] = f"Bearer {server.api_key}"

        response = await fetch(
            client, "GET", server.api_url,
            params={"query": query, "lang": language},
            headers=headers,
        )
        data = decode_json(response)
        if not isinstance(data, list):
            raise ProtocolMismatchError(f"Custom API {server.name} did not return a list")

        return [
            SubtitleCandidate(
                provider_result_id=str(sub.get("id") or sub["url"]),
                title=sub.get("name") or "",
                language=sub.get("language") or language,
                download_ref=sub["url"],
                format=sub.get("format") or "srt",
                kind="custom",
                provider_id=server.id,
                provider=server,
            )
            for sub in data
        ]

    async def _search_local(self, language: str) -> list[SubtitleCandidate]:
        local = await self.store.get_local_subtitles()
        return [sub for sub in local if sub.language == language]

    async def available_languages(self) -> list[str]:
        """Languages offered by any configured server, first-seen order."""
        languages: list[str] = []
        for server in await self.store.get_subtitle_servers():
            for language in server.languages:
                if language not in languages:
                    languages.append(language)
        return languages
