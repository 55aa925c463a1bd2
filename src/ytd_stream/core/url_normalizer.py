"""Canonicalisation of user-supplied video URLs.

Pure functions only: no I/O, no side effects.  Every accepted surface
form (watch page, shorts, embed, live, short-link) collapses to a single
canonical watch URL, which doubles as the metadata cache key.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

from ytd_stream.exceptions import InvalidInputError

CANONICAL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")

_LONG_HOSTS: frozenset[str] = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtube-nocookie.com",
        "www.youtube-nocookie.com",
    }
)
_SHORT_HOSTS: frozenset[str] = frozenset({"youtu.be", "www.youtu.be"})

# Path prefixes whose next segment is the video id.
_ID_PATH_PREFIXES: tuple[str, ...] = ("shorts", "embed", "live", "v")


def extract_video_id(raw_url: str) -> str:
    """Return the 11-character video id embedded in *raw_url*.

    Raises
    ------
    InvalidInputError
        If the URL is empty, on a non-allowlisted host, or lacks a
        recognisable video id.
    """
    stripped = (raw_url or "").strip()
    if not stripped:
        raise InvalidInputError("URL must not be empty.")

    # Scheme-less input ("youtu.be/abc") is accepted.
    candidate = stripped if _SCHEME_RE.match(stripped) else f"https://{stripped}"
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https"):
        raise _invalid(stripped)

    host = (parts.hostname or "").lower()
    segments = [segment for segment in parts.path.split("/") if segment]

    video_id: str | None = None
    if host in _SHORT_HOSTS:
        video_id = segments[0] if segments else None
    elif host in _LONG_HOSTS:
        if segments == ["watch"]:
            video_id = next(iter(parse_qs(parts.query).get("v", [])), None)
        elif len(segments) >= 2 and segments[0] in _ID_PATH_PREFIXES:
            video_id = segments[1]
    else:
        raise _invalid(stripped)

    if video_id is None or not _VIDEO_ID_RE.match(video_id):
        raise _invalid(stripped)
    return video_id


def normalize(raw_url: str) -> str:
    """Canonicalise *raw_url* into ``https://www.youtube.com/watch?v=<id>``."""
    return CANONICAL_TEMPLATE.format(video_id=extract_video_id(raw_url))


def _invalid(url: str) -> InvalidInputError:
    return InvalidInputError(
        f"Invalid YouTube URL: {url}",
        hint="Use a youtube.com/watch, /shorts, /embed or youtu.be link.",
    )
