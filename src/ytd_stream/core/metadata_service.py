"""Core metadata service — orchestrates normalisation, caching and parsing.

This is the central service consumed by the HTTP layer.  It depends on
a :class:`~ytd_stream.core.protocols.MetadataProvider` and a
:class:`~ytd_stream.core.metadata_cache.MetadataCache`, both injected at
construction time (dependency inversion), keeping the core free of any
external-system imports.

Guarantees
----------
* Only :class:`~ytd_stream.exceptions.YtdStreamError` subclasses escape.
* Invalid URLs are rejected before any provider call.
* Failed fetches are never cached.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ytd_stream.core import url_normalizer
from ytd_stream.core.metadata_cache import MetadataCache
from ytd_stream.core.models import FormatDescriptor, Thumbnail, VideoMetadata
from ytd_stream.core.protocols import MetadataProvider
from ytd_stream.exceptions import ProviderFetchError, YtdStreamError

logger = logging.getLogger(__name__)

_STREAMABLE_PROTOCOLS: frozenset[str] = frozenset({"http", "https"})


class MetadataService:
    """Service that resolves a raw URL to (possibly cached) metadata.

    Parameters
    ----------
    provider:
        Any object satisfying the :class:`MetadataProvider` protocol.
    cache:
        The process-wide metadata cache.
    """

    def __init__(self, provider: MetadataProvider, cache: MetadataCache) -> None:
        self._provider: MetadataProvider = provider
        self._cache: MetadataCache = cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_metadata(self, raw_url: str) -> VideoMetadata:
        """Return metadata for *raw_url*, served from cache when fresh.

        Raises
        ------
        InvalidInputError
            If *raw_url* is not a supported video URL.
        ProviderFetchError
            If the backend fails to return metadata.
        """
        canonical = url_normalizer.normalize(raw_url)

        async def fetch() -> VideoMetadata:
            logger.info("Fetching info for %s", canonical)
            info = await asyncio.to_thread(self._fetch, canonical)
            return self._parse_metadata(info)

        return await self._cache.get_or_fetch(canonical, fetch)

    # ------------------------------------------------------------------
    # Provider delegation (safe boundary)
    # ------------------------------------------------------------------

    def _fetch(self, url: str) -> dict[str, Any]:
        """Call the provider and ensure only our exceptions escape."""
        try:
            return self._provider.fetch_info(url)
        except YtdStreamError as exc:
            logger.warning("Provider failed for %s: %s", url, exc)
            raise
        except Exception as exc:
            logger.error("Unexpected provider error for %s: %s", url, exc)
            raise ProviderFetchError(
                f"Failed to fetch video info: {exc}",
            ) from exc

    # ------------------------------------------------------------------
    # Raw-dict → domain-model parsers (pure)
    # ------------------------------------------------------------------

    @classmethod
    def _parse_metadata(cls, info: dict[str, Any]) -> VideoMetadata:
        """Convert a raw info dict into a :class:`VideoMetadata`."""
        raw_duration = info.get("duration")
        duration = int(raw_duration) if isinstance(raw_duration, (int, float)) else 0
        return VideoMetadata(
            id=str(info.get("id", "")),
            title=str(info.get("title") or "Unknown"),
            author=str(info.get("uploader") or info.get("channel") or "Unknown"),
            duration_seconds=duration,
            thumbnails=cls._parse_thumbnails(info.get("thumbnails")),
            canonical_url=str(info.get("webpage_url", "")),
            formats=tuple(cls._parse_formats(cls._extract_raw_formats(info))),
        )

    @staticmethod
    def _parse_thumbnails(raw: object) -> tuple[Thumbnail, ...]:
        if not isinstance(raw, list):
            return ()
        return tuple(
            Thumbnail(
                url=str(entry["url"]),
                width=entry.get("width") if isinstance(entry.get("width"), int) else None,
                height=entry.get("height") if isinstance(entry.get("height"), int) else None,
            )
            for entry in raw
            if isinstance(entry, dict) and entry.get("url")
        )

    @staticmethod
    def _extract_raw_formats(info: dict[str, Any]) -> list[dict[str, Any]]:
        """Safely pull the ``formats`` list from a raw info dict."""
        raw: object = info.get("formats")
        if not isinstance(raw, list):
            return []
        # Each element is expected to be a dict; skip malformed entries.
        return [entry for entry in raw if isinstance(entry, dict)]

    @staticmethod
    def _is_streamable(raw: dict[str, Any]) -> bool:
        """True when the format is a plain HTTP(S) download (no manifests)."""
        url = raw.get("url")
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            return False
        protocol = raw.get("protocol")
        return protocol is None or protocol in _STREAMABLE_PROTOCOLS

    @staticmethod
    def _quality_label(raw: dict[str, Any], has_video: bool, has_audio: bool) -> str:
        note = raw.get("format_note")
        if note:
            return str(note)
        height = raw.get("height")
        if has_video and isinstance(height, int):
            return f"{height}p"
        if has_audio and not has_video:
            return "audio"
        return "unknown"

    @staticmethod
    def _bitrate(raw: dict[str, Any]) -> float | None:
        for key in ("tbr", "vbr", "abr"):
            value = raw.get(key)
            if isinstance(value, (int, float)) and value > 0:
                return float(value)
        return None

    @classmethod
    def _parse_single_format(cls, raw: dict[str, Any]) -> FormatDescriptor:
        """Convert one raw format dict to a :class:`FormatDescriptor`."""
        has_video = str(raw.get("vcodec") or "none") != "none"
        has_audio = str(raw.get("acodec") or "none") != "none"

        raw_size = raw.get("filesize")
        if raw_size is None:
            raw_size = raw.get("filesize_approx")
        filesize = int(raw_size) if isinstance(raw_size, (int, float)) else None

        headers = raw.get("http_headers")
        http_headers = (
            tuple((str(k), str(v)) for k, v in headers.items())
            if isinstance(headers, dict)
            else ()
        )

        return FormatDescriptor(
            id=str(raw.get("format_id", "")),
            quality_label=cls._quality_label(raw, has_video, has_audio),
            has_video=has_video,
            has_audio=has_audio,
            container=str(raw.get("ext", "")),
            bitrate=cls._bitrate(raw),
            filesize=filesize,
            source_url=str(raw["url"]),
            http_headers=http_headers,
        )

    @classmethod
    def _parse_formats(
        cls,
        raw_formats: list[dict[str, Any]],
    ) -> list[FormatDescriptor]:
        """Convert streamable raw format dicts to domain models."""
        return [
            cls._parse_single_format(entry)
            for entry in raw_formats
            if cls._is_streamable(entry)
        ]
