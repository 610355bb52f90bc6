"""
Pytest configuration and fixtures for the TV sources tests.
"""
import httpx
import pytest

from tvsources.models.channel import Channel, ServerDescriptor


class MockSubtitleStore:
    """In-memory stand-in for the subtitle side of the store."""

    def __init__(self, servers=None, saved=None, local=None):
        self.servers = list(servers or [])
        self.saved = dict(saved or {})
        self.local = list(local or [])
        self.save_calls = []

    async def get_subtitle_servers(self):
        return list(self.servers)

    async def get_channel_subtitle(self, channel_id, language):
        return self.saved.get((channel_id, language))

    async def save_channel_subtitle(self, channel_id, language, subtitle):
        self.save_calls.append((channel_id, language))
        self.saved[(channel_id, language)] = subtitle
        return True

    async def get_local_subtitles(self):
        return list(self.local)


class MockChannelStore:
    """In-memory stand-in for the channel side of the store."""

    def __init__(self):
        self.channels = {}

    async def replace_channels(self, source_id, channels):
        stored = [
            Channel(**draft.model_dump(), id=f"{source_id}-{i}", source_id=source_id)
            for i, draft in enumerate(channels)
        ]
        self.channels[source_id] = stored
        return stored


class MockHTTP:
    """Route requests to a handler and remember every request seen."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: list[httpx.Request] = []
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def mock_http():
    """Factory building a mocked httpx client from a request handler."""
    return MockHTTP


@pytest.fixture
def no_network():
    """Client that fails the test if any request is made."""
    def handler(request):
        raise AssertionError(f"Unexpected request: {request.method} {request.url}")
    return MockHTTP(handler)


@pytest.fixture
def sample_m3u_content():
    """Sample M3U content for testing."""
    return """#EXTM3U
#EXTINF:-1 tvg-id="ABC.us@East" tvg-logo="http://logos/abc.png" group-title="News",ABC East
http://example.com/abc-east.m3u8
#EXTINF:-1 tvg-id="CNN.us",CNN (1080p)
#EXTGRP:World News
http://example.com/cnn.m3u8
#EXTINF:-1,Channel Without ID
http://example.com/no-id.m3u8
"""


@pytest.fixture
def server():
    """Descriptor whose api path carries no protocol hint."""
    return ServerDescriptor(host="iptv.example", port=8080, api_path="/api", username="user", password="pass")
