"""
SQLite-backed store for channels, subtitle servers and saved subtitles.

The sources core only talks to the small ``ChannelStore`` and
``SubtitleStore`` interfaces; ``SQLiteStore`` implements both.
"""
import aiosqlite
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from pydantic import TypeAdapter

from tvsources.config import get_settings
from tvsources.models.channel import CategoryCount, Channel, ChannelDraft
from tvsources.models.subtitle import (
    LocalSubtitle,
    SavedSubtitle,
    SubtitleCandidate,
    SubtitleProviderConfig,
)

_provider_adapter = TypeAdapter(SubtitleProviderConfig)


class ChannelStore(Protocol):
    async def replace_channels(self, source_id: str, channels: list[ChannelDraft]) -> list[Channel]: ...


class SubtitleStore(Protocol):
    async def get_subtitle_servers(self) -> list[SubtitleProviderConfig]: ...

    async def get_channel_subtitle(self, channel_id: str, language: str) -> Optional[SavedSubtitle]: ...

    async def save_channel_subtitle(self, channel_id: str, language: str, subtitle: SavedSubtitle) -> bool: ...

    async def get_local_subtitles(self) -> list[SubtitleCandidate]: ...


def generate_id() -> str:
    return f"id_{uuid.uuid4().hex[:16]}"


class SQLiteStore:
    """Async SQLite store."""

    def __init__(self, db_path: Optional[str] = None):
        settings = get_settings()
        self.db_path = db_path or settings.database_path
        self._ensure_directory()

    def _ensure_directory(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Create database tables if they don't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS channels (
                    id TEXT PRIMARY KEY,
                    source_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS subtitle_servers (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # One saved subtitle per (channel, language)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS channel_subtitles (
                    channel_id TEXT NOT NULL,
                    language TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (channel_id, language)
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS local_subtitles (
                    id TEXT PRIMARY KEY,
                    language TEXT NOT NULL,
                    data TEXT NOT NULL,
                    added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await db.execute("CREATE INDEX IF NOT EXISTS idx_channels_source ON channels(source_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_channels_category ON channels(category)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_local_subtitles_language ON local_subtitles(language)")

            await db.commit()

    # ==================== CHANNELS ====================

    async def replace_channels(self, source_id: str, channels: list[ChannelDraft]) -> list[Channel]:
        """Drop every channel of a source and store the new list."""
        stored = [
            Channel(**draft.model_dump(), id=generate_id(), source_id=source_id)
            for draft in channels
        ]
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM channels WHERE source_id = ?", (source_id,))
            await db.executemany(
                """
                INSERT INTO channels (id, source_id, position, name, category, data)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (ch.id, source_id, position, ch.name, ch.category, ch.model_dump_json())
                    for position, ch in enumerate(stored)
                ],
            )
            await db.commit()
        return stored

    async def get_channels(self, category: Optional[str] = None, source_id: Optional[str] = None) -> list[Channel]:
        """Get stored channels, optionally filtered."""
        conditions = []
        params = []
        if category and category != "all":
            conditions.append("category = ?")
            params.append(category)
        if source_id:
            conditions.append("source_id = ?")
            params.append(source_id)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                f"SELECT data FROM channels {where_clause} ORDER BY source_id, position",
                params,
            )
            rows = await cursor.fetchall()
            return [Channel.model_validate_json(row[0]) for row in rows]

    async def delete_source_channels(self, source_id: str) -> int:
        """Delete channels owned by a playlist or server."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM channels WHERE source_id = ?", (source_id,))
            await db.commit()
            return cursor.rowcount

    async def get_categories(self) -> list[CategoryCount]:
        """Get categories sorted by channel count."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("""
                SELECT category, COUNT(*) AS count
                FROM channels
                GROUP BY category
                ORDER BY count DESC, category
            """)
            rows = await cursor.fetchall()
            return [CategoryCount(name=row[0], count=row[1]) for row in rows]

    async def search_channels(self, query: str) -> list[Channel]:
        """Case-insensitive search in channel names and categories."""
        if not query:
            return []
        escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                SELECT data FROM channels
                WHERE LOWER(name) LIKE ? ESCAPE '\\' OR LOWER(category) LIKE ? ESCAPE '\\'
                ORDER BY source_id, position
                """,
                (pattern, pattern),
            )
            rows = await cursor.fetchall()
            return [Channel.model_validate_json(row[0]) for row in rows]

    # ==================== SUBTITLE SERVERS ====================

    async def add_subtitle_server(self, server: SubtitleProviderConfig) -> SubtitleProviderConfig:
        """Append a subtitle server; an existing id is updated in place."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                SELECT COALESCE(
                    (SELECT position FROM subtitle_servers WHERE id = ?),
                    (SELECT COALESCE(MAX(position), -1) + 1 FROM subtitle_servers)
                )
                """,
                (server.id,),
            )
            (position,) = await cursor.fetchone()
            await db.execute(
                "INSERT OR REPLACE INTO subtitle_servers (id, position, data) VALUES (?, ?, ?)",
                (server.id, position, server.model_dump_json()),
            )
            await db.commit()
        return server

    async def get_subtitle_servers(self) -> list[SubtitleProviderConfig]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM subtitle_servers ORDER BY position")
            rows = await cursor.fetchall()
            return [_provider_adapter.validate_json(row[0]) for row in rows]

    async def delete_subtitle_server(self, server_id: str) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM subtitle_servers WHERE id = ?", (server_id,))
            await db.commit()
            return cursor.rowcount > 0

    # ==================== SAVED SUBTITLES ====================

    async def save_channel_subtitle(self, channel_id: str, language: str, subtitle: SavedSubtitle) -> bool:
        """Store a subtitle, overwriting any previous one for the same key."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO channel_subtitles (channel_id, language, data) VALUES (?, ?, ?)",
                (channel_id, language, subtitle.model_dump_json()),
            )
            await db.commit()
        return True

    async def get_channel_subtitle(self, channel_id: str, language: str) -> Optional[SavedSubtitle]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT data FROM channel_subtitles WHERE channel_id = ? AND language = ?",
                (channel_id, language),
            )
            row = await cursor.fetchone()
            return SavedSubtitle.model_validate_json(row[0]) if row else None

    async def get_channel_subtitles(self, channel_id: str) -> dict[str, SavedSubtitle]:
        """All saved subtitles of a channel keyed by language."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT language, data FROM channel_subtitles WHERE channel_id = ?",
                (channel_id,),
            )
            rows = await cursor.fetchall()
            return {row[0]: SavedSubtitle.model_validate_json(row[1]) for row in rows}

    # ==================== LOCAL SUBTITLES ====================

    async def add_local_subtitle(self, subtitle: LocalSubtitle) -> LocalSubtitle:
        subtitle = subtitle.model_copy(update={"id": subtitle.id or generate_id()})
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO local_subtitles (id, language, data, added_at) VALUES (?, ?, ?, ?)",
                (subtitle.id, subtitle.language, subtitle.model_dump_json(),
                 datetime.now(timezone.utc).isoformat()),
            )
            await db.commit()
        return subtitle

    async def list_local_subtitles(self) -> list[LocalSubtitle]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM local_subtitles ORDER BY added_at, id")
            rows = await cursor.fetchall()
            return [LocalSubtitle.model_validate_json(row[0]) for row in rows]

    async def get_local_subtitles(self) -> list[SubtitleCandidate]:
        return [sub.to_candidate() for sub in await self.list_local_subtitles()]

    async def delete_local_subtitle(self, subtitle_id: str) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM local_subtitles WHERE id = ?", (subtitle_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def clear_all(self):
        """Remove every stored record."""
        async with aiosqlite.connect(self.db_path) as db:
            for table in ("channels", "subtitle_servers", "channel_subtitles", "local_subtitles"):
                await db.execute(f"DELETE FROM {table}")
            await db.commit()


# Singleton instance
_store: Optional[SQLiteStore] = None


async def get_store() -> SQLiteStore:
    """Get or create store singleton."""
    global _store
    if _store is None:
        _store = SQLiteStore()
        await _store.initialize()
    return _store


def reset_store():
    """Forget the singleton (used when settings change)."""
    global _store
    _store = None
