"""
Automatic subtitle loading for a channel.

Walks auto-load providers in configured order and their languages in
listed order. The first (provider, language) pair that yields a saved or
freshly downloaded subtitle wins; failures move on to the next pair.
"""
import logging
from typing import Optional

from tvsources.config import Settings, get_settings
from tvsources.models.subtitle import SavedSubtitle
from tvsources.services.store import SubtitleStore
from tvsources.services.subtitle_download import SubtitleDownloader, normalize_to_vtt
from tvsources.services.subtitle_search import SubtitleSearchService

logger = logging.getLogger(__name__)


class SubtitleAutoLoader:
    """Produce at most one saved subtitle for (content name, channel)."""

    def __init__(
        self,
        store: SubtitleStore,
        search: SubtitleSearchService,
        downloader: SubtitleDownloader,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.search = search
        self.downloader = downloader
        self.settings = settings or get_settings()

    async def get_saved_subtitle(self, channel_id: str, language: str) -> Optional[SavedSubtitle]:
        return await self.store.get_channel_subtitle(channel_id, language)

    async def save_subtitle(self, channel_id: str, language: str, content: str, fmt: str) -> SavedSubtitle:
        """Persist a subtitle, replacing any previous one for the same key."""
        subtitle = SavedSubtitle(channel_id=channel_id, language=language, content=content, format=fmt)
        if not await self.store.save_channel_subtitle(channel_id, language, subtitle):
            logger.warning(f"Store refused subtitle for channel {channel_id} [{language}]")
        return subtitle

    async def auto_load(self, content_name: str, channel_id: str) -> Optional[SavedSubtitle]:
        """Return a subtitle for the channel, or None when nothing was found."""
        servers = await self.store.get_subtitle_servers()
        auto_servers = [s for s in servers if s.auto_load]
        if not auto_servers:
            return None

        for server in auto_servers:
            for language in server.languages:
                try:
                    saved = await self.get_saved_subtitle(channel_id, language)
                    if saved is not None:
                        return saved

                    scope = [server] if self.settings.subtitle_autoload_provider_scoped else None
                    results = await self.search.search(content_name, language, providers=scope)
                    candidates = results.candidates
                    if not candidates:
                        continue

                    best = candidates[0]
                    content = await self.downloader.download(best)
                    content = normalize_to_vtt(content, best.format)
                    subtitle = await self.save_subtitle(channel_id, language, content, "vtt")
                    logger.info(f"Auto-loaded {language} subtitle for channel {channel_id}: {best.title} ({best.kind})")
                    return subtitle
                except Exception as e:
                    logger.error(f"Error auto-loading subtitle ({server.name}, {language}): {e}")

        return None
