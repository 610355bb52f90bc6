"""
Subtitle API endpoints.
Provider management, search, download and per-channel auto-loading.
"""
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from typing import Union

from tvsources.models.subtitle import (
    CustomProvider,
    LocalProvider,
    LocalSubtitle,
    OpenSubtitlesProvider,
    SubtitleCandidate,
)
from tvsources.services.store import get_store
from tvsources.services.subtitle_autoload import SubtitleAutoLoader
from tvsources.services.subtitle_download import SubtitleDownloader, normalize_to_vtt
from tvsources.services.subtitle_search import SubtitleSearchService

router = APIRouter(prefix="/api", tags=["subtitles"])


class DownloadRequest(BaseModel):
    candidate: SubtitleCandidate
    channel_id: str | None = None


class AutoLoadRequest(BaseModel):
    content_name: str
    channel_id: str


# Provider configuration
@router.get("/subtitles/servers")
async def list_servers():
    store = await get_store()
    return await store.get_subtitle_servers()


@router.post("/subtitles/servers")
async def add_server(server: Union[OpenSubtitlesProvider, CustomProvider, LocalProvider]):
    store = await get_store()
    return await store.add_subtitle_server(server)


@router.delete("/subtitles/servers/{server_id}")
async def delete_server(server_id: str):
    store = await get_store()
    if not await store.delete_subtitle_server(server_id):
        raise HTTPException(status_code=404, detail="Subtitle server not found")
    return {"success": True, "id": server_id}


@router.get("/subtitles/languages")
async def list_languages():
    """Languages offered by the configured servers."""
    store = await get_store()
    return {"languages": await SubtitleSearchService(store).available_languages()}


# Local subtitle cache
@router.get("/subtitles/local")
async def list_local():
    store = await get_store()
    return await store.list_local_subtitles()


@router.post("/subtitles/local")
async def add_local(subtitle: LocalSubtitle):
    store = await get_store()
    return await store.add_local_subtitle(subtitle)


@router.delete("/subtitles/local/{subtitle_id}")
async def delete_local(subtitle_id: str):
    store = await get_store()
    if not await store.delete_local_subtitle(subtitle_id):
        raise HTTPException(status_code=404, detail="Local subtitle not found")
    return {"success": True, "id": subtitle_id}


# Search / download
@router.get("/subtitles/search")
async def search_subtitles(
    query: str = Query(..., min_length=1, description="Content name or IMDb id"),
    lang: str = Query(..., min_length=2, description="Language code (en, ar, es, ...)"),
):
    """Search every configured server offering ``lang``."""
    store = await get_store()
    result = await SubtitleSearchService(store).search(query, lang)
    return {
        "results": result.candidates,
        "count": len(result.candidates),
        "failed_providers": [
            {"id": failure.provider_id, "name": failure.provider_name, "error": failure.error}
            for failure in result.failures
        ],
    }


@router.post("/subtitles/download")
async def download_subtitle(request: DownloadRequest):
    """Download a candidate, convert it to WebVTT and optionally save it for a channel."""
    store = await get_store()
    # Credentials come from the stored server, never from the request body
    servers = {server.id: server for server in await store.get_subtitle_servers()}
    server = servers.get(request.candidate.provider_id)
    if request.candidate.kind == "opensubtitles" and server is None:
        raise HTTPException(status_code=404, detail="Subtitle server not found")
    candidate = request.candidate.model_copy(update={"provider": server})

    content = await SubtitleDownloader().download(candidate)
    content = normalize_to_vtt(content, candidate.format)
    if request.channel_id:
        loader = SubtitleAutoLoader(store, SubtitleSearchService(store), SubtitleDownloader())
        return await loader.save_subtitle(request.channel_id, request.candidate.language, content, "vtt")
    return {"content": content, "format": "vtt"}


@router.post("/subtitles/auto-load")
async def auto_load(request: AutoLoadRequest):
    """Find, download and save a subtitle for a channel."""
    store = await get_store()
    loader = SubtitleAutoLoader(store, SubtitleSearchService(store), SubtitleDownloader())
    subtitle = await loader.auto_load(request.content_name, request.channel_id)
    return {"found": subtitle is not None, "subtitle": subtitle}


@router.get("/channels/{channel_id}/subtitles")
async def channel_subtitles(channel_id: str):
    store = await get_store()
    return await store.get_channel_subtitles(channel_id)


@router.get("/channels/{channel_id}/subtitles/{lang}")
async def channel_subtitle(channel_id: str, lang: str):
    store = await get_store()
    subtitle = await store.get_channel_subtitle(channel_id, lang)
    if subtitle is None:
        raise HTTPException(status_code=404, detail="No saved subtitle")
    return subtitle
