"""Safe attachment filenames for ``Content-Disposition`` headers."""

from __future__ import annotations

import re

MAX_TITLE_LENGTH = 80
PLACEHOLDER = "_"

_UNSAFE_RE = re.compile(r'[\\/:*?"<>|\r\n]')
_NON_PRINTABLE_ASCII_RE = re.compile(r"[^\x20-\x7E]")


def sanitize_filename(title: str | None, ext: str = "mp4") -> str:
    """Build ``<title>.<ext>`` containing only printable, header-safe ASCII.

    Reserved path characters and anything outside printable ASCII become
    ``_``; the title part is cut to 80 characters.
    """
    safe_title = _UNSAFE_RE.sub(PLACEHOLDER, title or "video")
    safe_title = _NON_PRINTABLE_ASCII_RE.sub(PLACEHOLDER, safe_title)
    return f"{safe_title[:MAX_TITLE_LENGTH]}.{ext}"
