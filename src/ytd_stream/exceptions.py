"""Custom exception hierarchy for ytd-stream.

All exceptions that cross layer boundaries must inherit from
:class:`YtdStreamError`.  Raw third-party exceptions (yt-dlp, httpx,
process spawn ``OSError``) must NEVER propagate beyond the
infrastructure layer — they must be caught and re-raised as a typed
subclass defined here.

Hierarchy
---------
YtdStreamError
├── InvalidInputError          (400)
├── FormatNotFoundError        (400)
├── ProviderFetchError         (500)
│   └── VideoUnavailableError
├── NoPlayableFormatError      (500)
├── DeliverySpawnError         (500)
├── StreamTransportError       (500)
└── EnvironmentError           (500)
    └── FfmpegNotFoundError
"""

from __future__ import annotations


class YtdStreamError(Exception):
    """Base exception for all ytd-stream errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the HTTP and CLI error boundaries can render a
    clean message without leaking internal stack traces.
    """

    status_code: int = 500
    """HTTP status used when the error is reported before streaming starts."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- Request input ---------------------------------------------------------

class InvalidInputError(YtdStreamError):
    """Raised when the provided URL is malformed or not a supported source."""

    status_code = 400


class FormatNotFoundError(YtdStreamError):
    """Raised when a requested format id is absent from the listing."""

    status_code = 400


# --- Metadata / provider ---------------------------------------------------

class ProviderFetchError(YtdStreamError):
    """Raised when the metadata provider fails to return metadata."""


class VideoUnavailableError(ProviderFetchError):
    """Raised when the target video is unavailable (private, removed, etc.)."""


# --- Format handling -------------------------------------------------------

class NoPlayableFormatError(YtdStreamError):
    """Raised when no viable format remains after filtering."""


# --- Delivery --------------------------------------------------------------

class DeliverySpawnError(YtdStreamError):
    """Raised when the remux process or upstream connection cannot start."""


class StreamTransportError(YtdStreamError):
    """Raised when the upstream or remux process fails mid-transfer."""


# --- Environment / tooling -------------------------------------------------

class EnvironmentError(YtdStreamError):
    """Raised when a required runtime dependency is not available."""


class FfmpegNotFoundError(EnvironmentError):
    """Raised when ffmpeg cannot be located."""


def append_ytdlp_upgrade_suggestion(hint: str) -> str:
    """Append yt-dlp upgrade guidance to an existing hint text.

    The suggestion is appended only once and preserves the original
    hint content verbatim.
    """
    marker = "Also try updating yt-dlp:"
    if marker in hint:
        return hint
    return "\n".join(
        (
            hint,
            marker,
            "    pip install --upgrade yt-dlp",
        )
    )
