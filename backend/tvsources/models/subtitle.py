"""
Subtitle provider, search result and saved subtitle models.

Provider configs form a tagged union on ``kind``; each variant carries
only the fields its protocol needs.
"""
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from tvsources.config import get_settings


class _ProviderBase(BaseModel):
    id: str
    name: str
    languages: list[str] = Field(default_factory=list)
    auto_load: bool = False

    def supports(self, language: str) -> bool:
        return language in self.languages


class OpenSubtitlesProvider(_ProviderBase):
    """OpenSubtitles REST API (two-step download)."""
    kind: Literal["opensubtitles"] = "opensubtitles"
    api_url: str = Field(default_factory=lambda: get_settings().opensubtitles_api_base)
    api_key: Optional[str] = None


class CustomProvider(_ProviderBase):
    """Generic JSON API returning direct download URLs."""
    kind: Literal["custom"] = "custom"
    api_url: str
    api_key: Optional[str] = None


class LocalProvider(_ProviderBase):
    """Locally cached subtitles, no network access."""
    kind: Literal["local"] = "local"


SubtitleProviderConfig = Annotated[
    Union[OpenSubtitlesProvider, CustomProvider, LocalProvider],
    Field(discriminator="kind"),
]

ProviderKind = Literal["opensubtitles", "custom", "local"]


class SubtitleCandidate(BaseModel):
    """Search hit that has not been downloaded yet."""
    provider_result_id: str
    title: str = ""
    language: str
    # File id for opensubtitles, direct URL for custom/local
    download_ref: str
    format: str = "srt"
    popularity: Optional[int] = None
    kind: ProviderKind
    provider_id: Optional[str] = None
    # Resolved server config; never serialized since it holds credentials
    provider: Optional[SubtitleProviderConfig] = Field(default=None, exclude=True)


class ProviderSearchResult(BaseModel):
    """Outcome of querying a single provider."""
    provider_id: str
    provider_name: str
    candidates: list[SubtitleCandidate] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SubtitleSearchResult(BaseModel):
    """Aggregate of every provider queried for one (query, language)."""
    query: str
    language: str
    providers: list[ProviderSearchResult] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)

    @property
    def candidates(self) -> list[SubtitleCandidate]:
        return [c for result in self.providers for c in result.candidates]

    @property
    def failures(self) -> list[ProviderSearchResult]:
        return [result for result in self.providers if not result.ok]


class SavedSubtitle(BaseModel):
    """Downloaded subtitle stored per (channel_id, language)."""
    channel_id: str
    language: str
    content: str
    format: str = "vtt"
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LocalSubtitle(BaseModel):
    """Entry of the local subtitle cache."""
    id: Optional[str] = None
    name: str
    language: str
    url: str
    format: str = "srt"

    def to_candidate(self) -> SubtitleCandidate:
        return SubtitleCandidate(
            provider_result_id=self.id or self.url,
            title=self.name,
            language=self.language,
            download_ref=self.url,
            format=self.format,
            kind="local",
        )
