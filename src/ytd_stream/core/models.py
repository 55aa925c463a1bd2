"""Domain models for ytd-stream.

All models are **frozen** dataclasses — immutable value objects with no
behaviour beyond data access.  They carry zero I/O and zero dependencies
on external packages.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Union


# ---------------------------------------------------------------------------
# Individual format descriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FormatDescriptor:
    """A single encoded variant reported by the metadata provider."""

    id: str
    """Backend-specific identifier for this format (the ``itag``)."""

    quality_label: str
    """Display label, e.g. ``"1080p"`` or ``"audio"``."""

    has_video: bool
    has_audio: bool

    container: str
    """Container extension (e.g. ``mp4``, ``webm``, ``m4a``)."""

    bitrate: float | None
    """Total bitrate in kbit/s, or ``None`` if unknown."""

    filesize: int | None
    """File size in bytes, or ``None`` if unknown."""

    source_url: str
    """Direct upstream URL of the media bytes."""

    http_headers: tuple[tuple[str, str], ...] = ()
    """Request headers the upstream expects when fetching ``source_url``."""

    @property
    def is_muxed(self) -> bool:
        return self.has_video and self.has_audio

    @property
    def is_video_only(self) -> bool:
        return self.has_video and not self.has_audio

    @property
    def is_audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    def to_dict(self) -> dict[str, Any]:
        """Client-facing JSON shape of this format."""
        return {
            "itag": self.id,
            "qualityLabel": self.quality_label,
            "hasVideo": self.has_video,
            "hasAudio": self.has_audio,
            "container": self.container,
            "bitrate": self.bitrate,
            "filesize": self.filesize,
            "url": self.source_url,
        }


# ---------------------------------------------------------------------------
# Video metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Thumbnail:
    url: str
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "width": self.width, "height": self.height}


@dataclass(frozen=True, slots=True)
class VideoMetadata:
    """Top-level metadata for a single video, as cached."""

    id: str
    """Video ID (e.g. ``dQw4w9WgXcQ``)."""

    title: str
    author: str

    duration_seconds: int
    """Duration in seconds, ``0`` when unavailable."""

    thumbnails: tuple[Thumbnail, ...]
    canonical_url: str
    formats: tuple[FormatDescriptor, ...]
    """Formats in provider order; ranking happens per request."""


# ---------------------------------------------------------------------------
# Cache entry
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CacheEntry:
    data: VideoMetadata
    fetched_at: float


# ---------------------------------------------------------------------------
# Delivery selection (tagged variant)
# ---------------------------------------------------------------------------

class AudioCodecMode(str, enum.Enum):
    """How the remux process treats the audio track."""

    COPY = "copy"
    TRANSCODE = "transcode"


@dataclass(frozen=True, slots=True)
class DirectSelection:
    """Pipe a single format that already carries what the client needs."""

    format: FormatDescriptor


@dataclass(frozen=True, slots=True)
class MergeSelection:
    """Combine a video-only and an audio-only format into one stream."""

    video: FormatDescriptor
    audio: FormatDescriptor
    audio_mode: AudioCodecMode


DeliverySelection = Union[DirectSelection, MergeSelection]
