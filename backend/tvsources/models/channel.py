"""
Channel source and channel data models.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from tvsources.config import get_settings


def uncategorized_label() -> str:
    return get_settings().uncategorized_label


class ServerDescriptor(BaseModel):
    """Remote IPTV endpoint (Xtream-Codes style server or raw M3U endpoint)."""
    model_config = ConfigDict(frozen=True)

    protocol: str = "http"
    host: str
    port: int = 80
    api_path: Optional[str] = None
    username: str = ""
    password: str = ""

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


class ChannelDraft(BaseModel):
    """Channel as produced by the tokenizer or loader, before persistence."""
    name: str = ""
    stream_url: str = ""
    logo_url: Optional[str] = None
    category: str = Field(default_factory=uncategorized_label)
    epg_id: Optional[str] = None
    tvg_name: Optional[str] = None
    stream_id: Optional[str] = None


class Channel(ChannelDraft):
    """Persisted channel, owned by exactly one playlist or server."""
    id: str
    source_id: str


class CategoryCount(BaseModel):
    """Category with number of channels."""
    name: str
    count: int


class PlaylistSummary(BaseModel):
    """Quick stats over a playlist's content."""
    total_channels: int
    categories: int
    category_counts: dict[str, int]
