"""
Channel source API endpoints.
Loads channels from IPTV servers and M3U playlists and browses the result.
"""
from fastapi import APIRouter, Query
from pydantic import BaseModel
from typing import Optional

from tvsources.models.channel import ServerDescriptor
from tvsources.services.channel_loader import ChannelSourceLoader, select_strategy
from tvsources.services.store import get_store

router = APIRouter(prefix="/api", tags=["sources"])


class LoadServerRequest(BaseModel):
    source_id: str
    server: ServerDescriptor


class LoadPlaylistRequest(BaseModel):
    source_id: str
    url: str


@router.post("/sources/load")
async def load_server(request: LoadServerRequest):
    """Load a server's live channels and replace the stored ones for that source."""
    store = await get_store()
    loader = ChannelSourceLoader()
    channels = await loader.sync_source(request.source_id, request.server, store)
    return {
        "source_id": request.source_id,
        "strategy": select_strategy(request.server).value,
        "count": len(channels),
    }


@router.post("/sources/playlist")
async def load_playlist(request: LoadPlaylistRequest):
    """Load an M3U playlist URL and replace the stored channels for that source."""
    store = await get_store()
    loader = ChannelSourceLoader()
    channels = await loader.sync_playlist(request.source_id, request.url, store)
    return {"source_id": request.source_id, "count": len(channels)}


@router.post("/sources/test")
async def test_server(server: ServerDescriptor):
    """Check whether a server answers."""
    loader = ChannelSourceLoader()
    return {"reachable": await loader.test_connection(server)}


@router.delete("/sources/{source_id}/channels")
async def delete_source_channels(source_id: str):
    """Delete every channel owned by a source."""
    store = await get_store()
    deleted = await store.delete_source_channels(source_id)
    return {"source_id": source_id, "deleted": deleted}


@router.get("/channels")
async def list_channels(
    category: Optional[str] = Query(None, description="Filter by category"),
    source_id: Optional[str] = Query(None, description="Filter by playlist/server id"),
    search: Optional[str] = Query(None, description="Search in channel names and categories"),
):
    """List stored channels."""
    store = await get_store()
    if search:
        channels = await store.search_channels(search)
    else:
        channels = await store.get_channels(category=category, source_id=source_id)
    return {"channels": channels, "total": len(channels)}


@router.get("/categories")
async def list_categories():
    """List categories with channel counts."""
    store = await get_store()
    return await store.get_categories()
