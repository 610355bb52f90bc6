"""
Channel source loader.

Loads live channels from IPTV servers that speak either the Xtream-Codes
player API or plain M3U, picking the strategy from the server's api path:

- ``player_api`` in the path: Xtream only, errors propagate
- ``get.php`` or ``.m3u`` in the path: M3U only, errors propagate
- anything else: Xtream first, M3U if Xtream fails for any reason

A descriptor without an api path is an Xtream server on the default path.
"""
import enum
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from tvsources.config import Settings, get_settings
from tvsources.models.channel import Channel, ChannelDraft, ServerDescriptor
from tvsources.services.errors import (
    ProtocolMismatchError,
    SourceExhaustedError,
)
from tvsources.services.http import create_client, decode_json, fetch
from tvsources.services.m3u_parser import fetch_playlist, parse_playlist
from tvsources.services.store import ChannelStore

logger = logging.getLogger(__name__)

XTREAM_MARKER = "player_api"
M3U_MARKERS = ("get.php", ".m3u")


class LoadStrategy(str, enum.Enum):
    XTREAM = "xtream"
    M3U = "m3u"
    FALLBACK = "fallback"


def resolve_api_path(descriptor: ServerDescriptor, settings: Optional[Settings] = None) -> str:
    return descriptor.api_path or (settings or get_settings()).xtream_api_path


def select_strategy(descriptor: ServerDescriptor, settings: Optional[Settings] = None) -> LoadStrategy:
    """Pick a loading strategy from the descriptor's api path hint."""
    api_path = resolve_api_path(descriptor, settings)
    if XTREAM_MARKER in api_path:
        return LoadStrategy.XTREAM
    if any(marker in api_path for marker in M3U_MARKERS):
        return LoadStrategy.M3U
    return LoadStrategy.FALLBACK


def _join(base_url: str, path: str) -> str:
    return f"{base_url}/{path.lstrip('/')}"


def _text(value) -> Optional[str]:
    return str(value) if value not in (None, "") else None


class ChannelSourceLoader:
    """Fetch and normalize channel lists from remote servers."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client = client

    async def _with_client(self, func, *args):
        if self._client is not None:
            return await func(self._client, *args)
        async with create_client() as client:
            return await func(client, *args)

    async def load_channels(self, descriptor: ServerDescriptor) -> list[ChannelDraft]:
        """Load channels from a server, probing protocols as needed."""
        return await self._with_client(self._load, descriptor)

    async def _load(self, client: httpx.AsyncClient, descriptor: ServerDescriptor) -> list[ChannelDraft]:
        strategy = select_strategy(descriptor, self.settings)
        logger.info(f"Loading channels from {descriptor.base_url} using {strategy.value} strategy")
        api_path = resolve_api_path(descriptor, self.settings)

        if strategy is LoadStrategy.XTREAM:
            return await self._load_xtream(client, descriptor, api_path)
        if strategy is LoadStrategy.M3U:
            return await self._load_m3u(client, descriptor, api_path)

        try:
            return await self._load_xtream(client, descriptor, self.settings.xtream_api_path)
        except Exception as xtream_error:
            logger.warning(f"Xtream probe failed for {descriptor.base_url}, trying M3U: {xtream_error}")
            try:
                return await self._load_m3u(client, descriptor, self.settings.m3u_api_path)
            except Exception as m3u_error:
                logger.error(f"M3U probe failed for {descriptor.base_url}: {m3u_error}")
                raise SourceExhaustedError({"xtream": xtream_error, "m3u": m3u_error}) from m3u_error

    async def _load_xtream(
        self, client: httpx.AsyncClient, descriptor: ServerDescriptor, api_path: str
    ) -> list[ChannelDraft]:
        """List live streams through the Xtream player API."""
        params = {
            "username": descriptor.username,
            "password": descriptor.password,
            "action": "get_live_streams",
        }
        response = await fetch(client, "GET", _join(descriptor.base_url, api_path), params=params)
        data = decode_json(response)
        if not isinstance(data, list):
            raise ProtocolMismatchError("Invalid response from server: expected a list of streams")

        channels = []
        for stream in data:
            channel = self._xtream_to_channel(descriptor, stream)
            if channel is not None:
                channels.append(channel)

        logger.info(f"Loaded {len(channels)} channels via Xtream from {descriptor.base_url}")
        return channels

    def _xtream_to_channel(self, descriptor: ServerDescriptor, stream) -> Optional[ChannelDraft]:
        if not isinstance(stream, dict) or stream.get("stream_id") in (None, ""):
            logger.warning(f"Skipping Xtream entry without stream_id: {stream!r}")
            return None

        stream_id = str(stream["stream_id"])
        stream_url = "{}/live/{}/{}/{}.ts".format(
            descriptor.base_url,
            quote(descriptor.username, safe=""),
            quote(descriptor.password, safe=""),
            stream_id,
        )
        return ChannelDraft(
            name=str(stream.get("name") or "Unknown Channel"),
            stream_url=stream_url,
            logo_url=_text(stream.get("stream_icon")),
            category=str(stream.get("category_name") or self.settings.uncategorized_label),
            epg_id=_text(stream.get("epg_channel_id")),
            stream_id=stream_id,
        )

    async def _load_m3u(
        self, client: httpx.AsyncClient, descriptor: ServerDescriptor, api_path: str
    ) -> list[ChannelDraft]:
        """Download the server's m3u_plus playlist and tokenize it."""
        params = {
            "username": descriptor.username,
            "password": descriptor.password,
            "type": "m3u_plus",
        }
        response = await fetch(client, "GET", _join(descriptor.base_url, api_path), params=params)
        channels = parse_playlist(response.text)
        logger.info(f"Loaded {len(channels)} channels via M3U from {descriptor.base_url}")
        return channels

    async def test_connection(self, descriptor: ServerDescriptor) -> bool:
        """Return True when the server answers with a 2xx status. Never raises."""
        url = _join(descriptor.base_url, resolve_api_path(descriptor, self.settings))
        params = {"username": descriptor.username, "password": descriptor.password}
        try:
            response = await self._with_client(
                lambda client: client.get(url, params=params)
            )
            return response.is_success
        except Exception as e:
            logger.debug(f"Connection test to {descriptor.base_url} failed: {e}")
            return False

    async def load_playlist(self, url: str) -> list[ChannelDraft]:
        """Load a plain M3U playlist URL."""
        return await self._with_client(lambda client: fetch_playlist(url, client))

    async def sync_source(self, source_id: str, descriptor: ServerDescriptor, store: ChannelStore) -> list[Channel]:
        """Load a server and replace every stored channel of that source."""
        drafts = await self.load_channels(descriptor)
        return await store.replace_channels(source_id, drafts)

    async def sync_playlist(self, source_id: str, url: str, store: ChannelStore) -> list[Channel]:
        """Load a playlist URL and replace every stored channel of that source."""
        drafts = await self.load_playlist(url)
        return await store.replace_channels(source_id, drafts)
