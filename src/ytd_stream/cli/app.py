"""CLI application entry point and command routing for ytd-stream.

This module is the **sole process-level error boundary**.  It catches
:class:`~ytd_stream.exceptions.YtdStreamError`, ``KeyboardInterrupt``,
and any unexpected ``Exception``, rendering user-friendly messages via
Rich and returning well-defined exit codes.

Architecture notes
------------------
* No business logic lives here — serving is delegated to the API
  factory, diagnostics to :mod:`ytd_stream.cli.doctor`.
* This module is the only place that translates between the domain world
  and the OS process exit code.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ytd_stream.cli import exit_codes
from ytd_stream.cli.console import configure_logging, console
from ytd_stream.exceptions import YtdStreamError
from ytd_stream.version import __version__

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Construct the top-level argument parser.

    The CLI supports:
    * ``ytd-stream serve``   — run the HTTP API
    * ``ytd-stream doctor``  — environment diagnostics
    * ``ytd-stream --version``
    """
    parser = argparse.ArgumentParser(
        prog="ytd-stream",
        description="Video metadata and on-demand stream delivery service.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default=None,
        choices=("serve", "doctor"),
        help="'serve' to run the HTTP API, 'doctor' to run diagnostics.",
    )
    parser.add_argument("--host", default=None, help="Override the bind address.")
    parser.add_argument("--port", type=int, default=None, help="Override the listen port.")
    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

def _handle_serve(host: str | None, port: int | None) -> int:
    """Start uvicorn with an application built from the environment."""
    import uvicorn

    from ytd_stream.api import create_app
    from ytd_stream.config import Settings
    from ytd_stream.infra.ffmpeg_detector import detect_ffmpeg

    settings = Settings()
    if host is not None:
        settings.host = host
    if port is not None:
        settings.port = port
    configure_logging(settings.log_level)

    ffmpeg_status = detect_ffmpeg(settings.ffmpeg_path)
    if not ffmpeg_status.found:
        logger.warning(
            "ffmpeg %s; video-only formats cannot be merged. Run 'ytd-stream doctor'.",
            ffmpeg_status.summary,
        )

    logger.info("ytd-stream %s listening on http://%s:%d", __version__, settings.host, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )
    return exit_codes.SUCCESS


def _handle_doctor() -> int:
    """Dispatch the ``doctor`` diagnostics command."""
    from ytd_stream.cli.doctor import run_doctor

    return run_doctor()


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the ytd-stream CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.  Accepting *argv* enables deterministic testing without
        monkeypatching.

    Returns
    -------
    int
        OS process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return exit_codes.SUCCESS

    if args.command == "doctor":
        return _handle_doctor()

    return _handle_serve(args.host, args.port)


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main()
        sys.exit(code)
    except YtdStreamError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        if exc.hint:
            console.print(f"[yellow]Hint:[/yellow] {exc.hint}")
        sys.exit(exit_codes.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {exc}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)
