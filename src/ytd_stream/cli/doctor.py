"""``ytd-stream doctor`` — environment diagnostics command.

Gathers system information and renders a Rich table summarising
whether the runtime environment can serve metadata and merge streams.
No business logic resides here; it purely collects and displays
diagnostic data.
"""

from __future__ import annotations

import platform
import sys

from rich.table import Table

from ytd_stream.cli import exit_codes
from ytd_stream.cli.console import console
from ytd_stream.config import Settings
from ytd_stream.infra.ffmpeg_detector import FfmpegStatus, detect_ffmpeg
from ytd_stream.version import __version__

OK = "[green]OK[/green]"
WARN = "[yellow]WARN[/yellow]"
FAIL = "[red]FAIL[/red]"


# ---------------------------------------------------------------------------
# Diagnostic collectors
# ---------------------------------------------------------------------------

def _python_version_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the Python version row."""
    version = platform.python_version()
    ok = sys.version_info[:2] >= (3, 10)
    status = OK if ok else "[red]FAIL (>=3.10 required)[/red]"
    return "Python", version, status


def _ytdlp_version_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the yt-dlp version row."""
    try:
        from yt_dlp.version import __version__ as ydl_ver
    except ImportError:
        return "yt-dlp", "NOT INSTALLED", FAIL
    return "yt-dlp", ydl_ver, OK


def _ffmpeg_check(status_obj: FfmpegStatus) -> tuple[str, str, str]:
    """Return (label, value, status) for the ffmpeg row.

    Missing ffmpeg is a warning: muxed formats still stream directly.
    """
    if status_obj.found:
        return "ffmpeg", str(status_obj.path), OK
    return "ffmpeg", status_obj.summary, WARN


def _os_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the OS row."""
    system_raw = platform.system()
    system_display = {
        "Windows": "Windows",
        "Linux": "Linux",
        "Darwin": "macOS",
    }.get(system_raw, system_raw)
    value = f"{system_display} {platform.release()} ({platform.machine()})"
    return "OS", value, OK


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def run_doctor(settings: Settings | None = None) -> int:
    """Execute all diagnostic checks and render a Rich summary table.

    Returns
    -------
    int
        :data:`exit_codes.SUCCESS` when all critical checks pass,
        :data:`exit_codes.GENERAL_ERROR` if a critical check fails.
    """
    settings = settings or Settings()
    ffmpeg_status = detect_ffmpeg(settings.ffmpeg_path)
    checks = [
        ("ytd-stream", __version__, OK),
        _python_version_check(),
        _ytdlp_version_check(),
        _ffmpeg_check(ffmpeg_status),
        _os_check(),
    ]
    has_failure = any("FAIL" in status for _, _, status in checks)

    table = Table(
        title="ytd-stream doctor",
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Component", style="bold", min_width=12)
    table.add_column("Value", min_width=20)
    table.add_column("Status", justify="center", min_width=8)
    for label, value, status in checks:
        table.add_row(label, value, status)

    console.print()
    console.print(table)
    console.print()

    if ffmpeg_status.install_hint:
        console.print("[yellow]Without ffmpeg, video-only formats cannot be merged.[/yellow]")
        console.print(ffmpeg_status.install_hint, highlight=False)
        console.print()

    if has_failure:
        console.print("[bold red]Some checks failed.[/bold red]")
        return exit_codes.GENERAL_ERROR

    console.print("[bold green]All checks passed.[/bold green]")
    return exit_codes.SUCCESS
