"""
Error taxonomy shared by the channel loader and the subtitle pipeline.
"""
from typing import Optional


class TVSourcesError(Exception):
    """Base class for all errors raised by the sources core."""


class ConfigurationError(TVSourcesError):
    """No providers/servers configured, or a provider lacks a required setting."""


class TransportError(TVSourcesError):
    """Network failure or non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DecodingError(TransportError):
    """Response body could not be decoded (malformed JSON/text)."""


class ProtocolMismatchError(TVSourcesError):
    """Response decoded fine but has the wrong shape for the protocol."""


class ChannelLoadError(TVSourcesError):
    """A channel source could not be loaded."""


class SourceExhaustedError(TransportError, ChannelLoadError):
    """Every applicable channel loading strategy failed."""

    def __init__(self, errors: dict[str, Exception]):
        summary = "; ".join(f"{name}: {err}" for name, err in errors.items())
        super().__init__(f"All channel loading strategies failed ({summary})")
        self.errors = errors


class DownloadError(TransportError):
    """A subtitle file could not be downloaded."""


class NoDownloadLinkError(DownloadError):
    """The resolve step succeeded but returned no download link."""
