"""yt-dlp backed implementation of :class:`~ytd_stream.core.protocols.MetadataProvider`.

This module is the **only** place in the codebase that imports ``yt_dlp``.
All yt-dlp exceptions are caught here and re-raised as typed
:class:`~ytd_stream.exceptions.YtdStreamError` subclasses — nothing raw
escapes the infrastructure boundary.
"""

from __future__ import annotations

import logging
from typing import Any

import yt_dlp
import yt_dlp.utils

from ytd_stream.exceptions import (
    ProviderFetchError,
    VideoUnavailableError,
    append_ytdlp_upgrade_suggestion,
)

logger = logging.getLogger(__name__)

PRIVATE_VIDEO_MESSAGE = "This video is private and cannot be downloaded."
MEMBERS_ONLY_MESSAGE = "This video is members-only and cannot be downloaded."
RESTRICTED_MESSAGE = (
    "This video cannot be reached. It may be age-restricted "
    "or unavailable in this region."
)


class YtDlpMetadataProvider:
    """Concrete :class:`MetadataProvider` backed by the yt-dlp Python API.

    Usage::

        provider = YtDlpMetadataProvider()
        info = provider.fetch_info("https://www.youtube.com/watch?v=...")

    This class satisfies the :class:`~ytd_stream.core.protocols.MetadataProvider`
    protocol structurally — no explicit inheritance required.
    """

    # Lower-cased substrings of yt-dlp error messages, mapped to the
    # user-facing text reported instead.  First match wins.
    _UNAVAILABLE_SIGNALS: tuple[tuple[str, str], ...] = (
        ("private video", PRIVATE_VIDEO_MESSAGE),
        ("members-only", MEMBERS_ONLY_MESSAGE),
        ("join this channel", MEMBERS_ONLY_MESSAGE),
        ("unable to download webpage", RESTRICTED_MESSAGE),
        ("sign in to confirm your age", RESTRICTED_MESSAGE),
        ("not available in your country", RESTRICTED_MESSAGE),
        ("video unavailable", RESTRICTED_MESSAGE),
        ("this video is no longer available", RESTRICTED_MESSAGE),
        ("video has been removed", RESTRICTED_MESSAGE),
    )

    @staticmethod
    def _build_opts() -> dict[str, Any]:
        """Return yt-dlp options suitable for metadata-only extraction."""
        return {
            "quiet": True,
            "no_warnings": True,
            "no_color": True,
            "noplaylist": True,
            # Do not write any files to disk.
            "skip_download": True,
        }

    # ------------------------------------------------------------------
    # Protocol method
    # ------------------------------------------------------------------

    def fetch_info(self, url: str) -> dict[str, Any]:
        """Extract metadata for *url* without downloading.

        Returns
        -------
        dict[str, Any]
            The raw info dict produced by ``yt_dlp.YoutubeDL.extract_info``.

        Raises
        ------
        VideoUnavailableError
            When yt-dlp reports the video as private / members-only /
            restricted / removed.
        ProviderFetchError
            For all other extraction failures.
        """
        try:
            with yt_dlp.YoutubeDL(self._build_opts()) as ydl:
                info: Any = ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as exc:
            raise self._map_error(exc) from exc
        except Exception as exc:
            raise ProviderFetchError(
                f"Failed to fetch video info: {exc}",
            ) from exc

        if info is None:
            raise ProviderFetchError(
                "yt-dlp returned no metadata for the given URL.",
                hint="The URL may not point to a valid video.",
            )

        if not isinstance(info, dict):
            raise ProviderFetchError(
                "yt-dlp returned an unexpected data structure.",
            )

        return dict(info)  # shallow copy — isolate from yt-dlp internals

    # ------------------------------------------------------------------
    # Exception mapping
    # ------------------------------------------------------------------

    @classmethod
    def _map_error(cls, exc: Exception) -> ProviderFetchError:
        """Translate a yt-dlp ``DownloadError`` into a domain exception."""
        raw_message = str(exc)
        msg_lower = raw_message.lower()
        for signal, message in cls._UNAVAILABLE_SIGNALS:
            if signal in msg_lower:
                logger.info("Video unavailable (%s): %s", signal, raw_message)
                return VideoUnavailableError(message)
        return ProviderFetchError(
            f"Failed to fetch video info: {raw_message}",
            hint=append_ytdlp_upgrade_suggestion(
                "Check that the URL is correct and the video is public.",
            ),
        )
