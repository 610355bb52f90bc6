"""
M3U Parser Service.
Tokenizes M3U/M3U8 playlist text into channel drafts.
"""
import re
from collections import Counter
from pathlib import Path
from typing import Optional
import logging

import httpx

from tvsources.models.channel import ChannelDraft, PlaylistSummary, uncategorized_label
from tvsources.services.errors import ProtocolMismatchError
from tvsources.services.http import fetch

logger = logging.getLogger(__name__)

EXTINF = "#EXTINF:"
EXTGRP = "#EXTGRP:"

# key="value" pairs on an EXTINF line
ATTRIBUTE_PATTERN = re.compile(r'([a-z-]+)="([^"]*)"', re.IGNORECASE)


def parse_extinf(line: str) -> ChannelDraft:
    """Build a pending channel from an ``#EXTINF`` line."""
    fields: dict[str, str] = {}
    for key, value in ATTRIBUTE_PATTERN.findall(line):
        fields[key.lower()] = value

    # Display name follows the last comma
    comma = line.rfind(",")
    name = line[comma + 1:].strip() if comma != -1 else ""
    tvg_name = fields.get("tvg-name") or None
    if not name and tvg_name:
        name = tvg_name

    return ChannelDraft(
        name=name,
        logo_url=fields.get("tvg-logo") or None,
        category=fields.get("group-title") or uncategorized_label(),
        epg_id=fields.get("tvg-id") or None,
        tvg_name=tvg_name,
    )


def parse_playlist(content: str) -> list[ChannelDraft]:
    """
    Parse playlist text into channel drafts, in source order.

    Malformed lines are skipped; this never raises.
    """
    channels: list[ChannelDraft] = []
    pending: Optional[ChannelDraft] = None

    for raw in (content or "").splitlines():
        line = raw.strip()
        if not line:
            continue

        if line.startswith(EXTINF):
            pending = parse_extinf(line)
        elif line.startswith(EXTGRP):
            if pending is not None:
                pending.category = line[len(EXTGRP):].strip()
        elif line.startswith("#"):
            continue
        elif pending is not None:
            pending.stream_url = line
            channels.append(pending)
            pending = None

    return channels


def validate_playlist(content) -> bool:
    """Cheap check that content looks like M3U before a full parse."""
    if not content or not isinstance(content, str):
        return False
    return "#EXTM3U" in content or "#EXTINF" in content


def playlist_summary(content: str) -> PlaylistSummary:
    """Count channels per category."""
    counts = Counter(ch.category or uncategorized_label() for ch in parse_playlist(content))
    return PlaylistSummary(
        total_channels=sum(counts.values()),
        categories=len(counts),
        category_counts=dict(counts),
    )


def parse_file(filepath: str | Path) -> list[ChannelDraft]:
    """Parse a playlist stored on disk."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"M3U file not found: {filepath}")

    logger.info(f"Parsing M3U file: {filepath}")
    content = filepath.read_text(encoding="utf-8", errors="ignore")
    channels = parse_playlist(content)
    logger.info(f"Parsed {len(channels)} channels from {filepath.name}")
    return channels


async def fetch_playlist(url: str, client: httpx.AsyncClient, params: Optional[dict] = None) -> list[ChannelDraft]:
    """Download a remote playlist and parse it."""
    response = await fetch(client, "GET", url, params=params)
    content = response.text
    if not validate_playlist(content):
        raise ProtocolMismatchError(f"Response from {url} is not an M3U playlist")
    channels = parse_playlist(content)
    logger.info(f"Parsed {len(channels)} channels from {url}")
    return channels
