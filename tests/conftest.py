"""Shared pytest fixtures and configuration for the ytd-stream test suite.

Guidelines
----------
* No internet access in any test.
* yt-dlp must be mocked at the infra boundary.
* Upstream media servers are faked with ``httpx.MockTransport``.
* Core tests must be pure — no side effects.
"""

from __future__ import annotations
