"""``python -m ytd_stream`` runs the same entry point as the ``ytd-stream`` script."""

from __future__ import annotations

from ytd_stream.cli.app import cli

if __name__ == "__main__":
    cli()
