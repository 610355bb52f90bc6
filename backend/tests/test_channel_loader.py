"""
Tests for the channel source loader and its protocol fallback.
"""
import httpx
import pytest

from tvsources.models.channel import ServerDescriptor
from tvsources.services.channel_loader import ChannelSourceLoader, LoadStrategy, select_strategy
from tvsources.services.errors import (
    ChannelLoadError,
    ProtocolMismatchError,
    SourceExhaustedError,
    TransportError,
)
from conftest import MockChannelStore

XTREAM_STREAMS = [
    {
        "stream_id": 101,
        "name": "BBC One",
        "stream_icon": "http://logos/bbc.png",
        "category_name": "UK",
        "epg_channel_id": "bbc1.uk",
    },
    {"stream_id": 102},
    {"name": "No id"},
]

M3U_BODY = """#EXTM3U
#EXTINF:-1 tvg-id="cnn.us" group-title="News",CNN
http://iptv.example:8080/user/pass/7
"""


def route(xtream=None, m3u=None):
    """Build a handler answering the Xtream and M3U endpoints."""
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("player_api.php") and xtream is not None:
            return xtream(request)
        if request.url.path.endswith("get.php") and m3u is not None:
            return m3u(request)
        return httpx.Response(404)
    return handler


def xtream_ok(request):
    return httpx.Response(200, json=XTREAM_STREAMS)


def m3u_ok(request):
    return httpx.Response(200, text=M3U_BODY)


def fails(request):
    return httpx.Response(500)


class TestSelectStrategy:

    @pytest.mark.parametrize("api_path,expected", [
        ("/player_api.php", LoadStrategy.XTREAM),
        ("/panel/player_api.php", LoadStrategy.XTREAM),
        ("/get.php", LoadStrategy.M3U),
        ("/lists/tv.m3u", LoadStrategy.M3U),
        ("/lists/tv.m3u8", LoadStrategy.M3U),
        ("/api", LoadStrategy.FALLBACK),
        (None, LoadStrategy.XTREAM),
    ])
    def test_strategy_from_api_path(self, api_path, expected):
        descriptor = ServerDescriptor(host="h", api_path=api_path)
        assert select_strategy(descriptor) is expected


class TestXtreamProbe:

    @pytest.mark.asyncio
    async def test_maps_live_streams(self, mock_http, server):
        http = mock_http(route(xtream=xtream_ok))
        descriptor = server.model_copy(update={"api_path": "/player_api.php"})

        channels = await ChannelSourceLoader(http.client).load_channels(descriptor)

        # Entry without stream_id is skipped
        assert len(channels) == 2
        bbc = channels[0]
        assert bbc.name == "BBC One"
        assert bbc.stream_url == "http://iptv.example:8080/live/user/pass/101.ts"
        assert bbc.logo_url == "http://logos/bbc.png"
        assert bbc.category == "UK"
        assert bbc.epg_id == "bbc1.uk"
        assert channels[1].name == "Unknown Channel"
        assert channels[1].category == "Uncategorized"

        params = http.requests[0].url.params
        assert params["username"] == "user"
        assert params["password"] == "pass"
        assert params["action"] == "get_live_streams"

    @pytest.mark.asyncio
    async def test_explicit_hint_failure_does_not_fall_back(self, mock_http, server):
        http = mock_http(route(xtream=fails, m3u=m3u_ok))
        descriptor = server.model_copy(update={"api_path": "/player_api.php"})

        with pytest.raises(TransportError) as exc_info:
            await ChannelSourceLoader(http.client).load_channels(descriptor)

        assert exc_info.value.status_code == 500
        assert http.paths == ["/player_api.php"]

    @pytest.mark.asyncio
    async def test_missing_api_path_is_xtream_without_fallback(self, mock_http, server):
        http = mock_http(route(xtream=fails, m3u=m3u_ok))
        descriptor = server.model_copy(update={"api_path": None})

        with pytest.raises(TransportError) as exc_info:
            await ChannelSourceLoader(http.client).load_channels(descriptor)

        assert not isinstance(exc_info.value, SourceExhaustedError)
        assert http.paths == ["/player_api.php"]

    @pytest.mark.asyncio
    async def test_non_list_body_is_protocol_mismatch(self, mock_http, server):
        http = mock_http(route(xtream=lambda r: httpx.Response(200, json={"user_info": {"auth": 0}})))
        descriptor = server.model_copy(update={"api_path": "/player_api.php"})

        with pytest.raises(ProtocolMismatchError):
            await ChannelSourceLoader(http.client).load_channels(descriptor)


class TestM3UProbe:

    @pytest.mark.asyncio
    async def test_explicit_m3u_hint(self, mock_http, server):
        http = mock_http(route(xtream=xtream_ok, m3u=m3u_ok))
        descriptor = server.model_copy(update={"api_path": "/get.php"})

        channels = await ChannelSourceLoader(http.client).load_channels(descriptor)

        assert [ch.name for ch in channels] == ["CNN"]
        assert http.paths == ["/get.php"]
        assert http.requests[0].url.params["type"] == "m3u_plus"

    @pytest.mark.asyncio
    async def test_explicit_m3u_hint_failure_propagates(self, mock_http, server):
        http = mock_http(route(xtream=xtream_ok, m3u=fails))
        descriptor = server.model_copy(update={"api_path": "/get.php"})

        with pytest.raises(TransportError):
            await ChannelSourceLoader(http.client).load_channels(descriptor)
        assert http.paths == ["/get.php"]


class TestFallback:

    @pytest.mark.asyncio
    async def test_xtream_first_when_it_works(self, mock_http, server):
        http = mock_http(route(xtream=xtream_ok, m3u=m3u_ok))
        channels = await ChannelSourceLoader(http.client).load_channels(server)

        assert len(channels) == 2
        assert http.paths == ["/player_api.php"]

    @pytest.mark.asyncio
    async def test_falls_back_to_m3u_on_transport_error(self, mock_http, server):
        http = mock_http(route(xtream=fails, m3u=m3u_ok))
        channels = await ChannelSourceLoader(http.client).load_channels(server)

        assert [ch.name for ch in channels] == ["CNN"]
        assert http.paths == ["/player_api.php", "/get.php"]

    @pytest.mark.asyncio
    async def test_falls_back_to_m3u_on_non_list_body(self, mock_http, server):
        http = mock_http(route(xtream=lambda r: httpx.Response(200, json={"error": "x"}), m3u=m3u_ok))
        channels = await ChannelSourceLoader(http.client).load_channels(server)
        assert [ch.name for ch in channels] == ["CNN"]

    @pytest.mark.asyncio
    async def test_falls_back_to_m3u_on_network_error(self, mock_http, server):
        def xtream_down(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = mock_http(route(xtream=xtream_down, m3u=m3u_ok))
        channels = await ChannelSourceLoader(http.client).load_channels(server)
        assert len(channels) == 1

    @pytest.mark.asyncio
    async def test_both_strategies_failing_reports_both(self, mock_http, server):
        http = mock_http(route(xtream=lambda r: httpx.Response(200, text="not json"), m3u=fails))

        with pytest.raises(SourceExhaustedError) as exc_info:
            await ChannelSourceLoader(http.client).load_channels(server)

        error = exc_info.value
        assert isinstance(error, TransportError)
        assert isinstance(error, ChannelLoadError)
        assert set(error.errors) == {"xtream", "m3u"}
        assert error.errors["m3u"].status_code == 500
        assert "xtream" in str(error) and "m3u" in str(error)


class TestConnection:

    @pytest.mark.asyncio
    async def test_reachable(self, mock_http, server):
        http = mock_http(lambda request: httpx.Response(200, json={}))
        descriptor = server.model_copy(update={"api_path": None})
        assert await ChannelSourceLoader(http.client).test_connection(descriptor) is True
        assert http.paths == ["/player_api.php"]

    @pytest.mark.asyncio
    async def test_error_status(self, mock_http, server):
        http = mock_http(lambda request: httpx.Response(401))
        assert await ChannelSourceLoader(http.client).test_connection(server) is False

    @pytest.mark.asyncio
    async def test_network_error_is_swallowed(self, mock_http, server):
        def down(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        http = mock_http(down)
        assert await ChannelSourceLoader(http.client).test_connection(server) is False


class TestSync:

    @pytest.mark.asyncio
    async def test_sync_source_replaces_channels(self, mock_http, server):
        http = mock_http(route(xtream=xtream_ok))
        store = MockChannelStore()
        loader = ChannelSourceLoader(http.client)

        first = await loader.sync_source("srv1", server, store)
        second = await loader.sync_source("srv1", server, store)

        assert len(first) == 2
        assert store.channels["srv1"] == second
        assert all(ch.source_id == "srv1" for ch in second)

    @pytest.mark.asyncio
    async def test_sync_playlist(self, mock_http):
        http = mock_http(lambda request: httpx.Response(200, text=M3U_BODY))
        store = MockChannelStore()

        channels = await ChannelSourceLoader(http.client).sync_playlist("pl1", "http://lists/tv.m3u", store)

        assert len(channels) == 1
        assert channels[0].id == "pl1-0"
