"""Locating the remux binary.

Merge deliveries shell out to ffmpeg.  The binary is taken from the
``ffmpeg_path`` setting when configured, otherwise looked up on ``PATH``.
Lookup goes through :func:`shutil.which` only; nothing is executed here,
and nothing is installed.
"""

from __future__ import annotations

import platform
import shutil
from dataclasses import dataclass
from pathlib import Path

from ytd_stream.exceptions import FfmpegNotFoundError

_GENERIC_INSTALL: tuple[str, ...] = (
    "Please install ffmpeg from https://ffmpeg.org/download.html",
)

_INSTALL_COMMANDS: dict[str, tuple[str, ...]] = {
    "windows": ("winget install Gyan.FFmpeg", "choco install ffmpeg"),
    "linux": (
        "sudo apt install ffmpeg",
        "sudo dnf install ffmpeg",
        "sudo pacman -S ffmpeg",
    ),
    "darwin": ("brew install ffmpeg",),
}


@dataclass(frozen=True, slots=True)
class FfmpegStatus:
    """Outcome of one ffmpeg lookup.

    Attributes
    ----------
    found : bool
        Whether an executable was located.
    path : Path | None
        Resolved binary path when found.
    source : str
        ``"configured"`` when an explicit path was probed, else ``"PATH"``.
    summary : str
        One-line description for logs and the doctor table.
    install_commands : tuple[str, ...]
        Suggested install commands; empty when found.
    """

    found: bool
    path: Path | None
    source: str
    summary: str
    install_commands: tuple[str, ...] = ()

    @property
    def install_hint(self) -> str | None:
        if not self.install_commands:
            return None
        lines = ["Install ffmpeg using one of:"]
        lines.extend(f"  {cmd}" for cmd in self.install_commands)
        return "\n".join(lines)


def detect_ffmpeg(explicit_path: str | None = None) -> FfmpegStatus:
    """Look up ffmpeg, preferring *explicit_path* over ``PATH``.

    Never raises; callers decide whether a missing binary is fatal.
    """
    source = "configured" if explicit_path else "PATH"
    located = shutil.which(explicit_path or "ffmpeg")
    if located is None:
        summary = f"{explicit_path} is not executable" if explicit_path else "not found"
        return FfmpegStatus(
            found=False,
            path=None,
            source=source,
            summary=summary,
            install_commands=_platform_install_commands(),
        )

    resolved = Path(located).resolve()
    return FfmpegStatus(found=True, path=resolved, source=source, summary=f"found at {resolved}")


def require_ffmpeg(explicit_path: str | None = None) -> Path:
    """Return the ffmpeg binary path or raise :class:`FfmpegNotFoundError`."""
    status = detect_ffmpeg(explicit_path)
    if status.path is None:
        raise FfmpegNotFoundError(
            "ffmpeg is not installed or not on PATH.",
            hint=status.install_hint,
        )
    return status.path


def _platform_install_commands() -> tuple[str, ...]:
    return _INSTALL_COMMANDS.get(platform.system().lower(), _GENERIC_INSTALL)
