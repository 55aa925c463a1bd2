"""Process exit codes returned by ``ytd-stream``."""

from __future__ import annotations

SUCCESS: int = 0
"""Server stopped cleanly or diagnostics passed."""

GENERAL_ERROR: int = 1
"""A :class:`~ytd_stream.exceptions.YtdStreamError` reached the CLI, or a doctor check failed."""

UNEXPECTED_ERROR: int = 2
"""Any other exception escaped the command."""

KEYBOARD_INTERRUPT: int = 130
"""Interrupted with Ctrl+C (128 + SIGINT)."""
