"""Tests for ffmpeg detection (infra/ffmpeg_detector.py).

All tests mock :func:`shutil.which` — no system dependency.

Coverage:
* ``detect_ffmpeg`` on ``PATH`` and with a configured explicit binary.
* ``require_ffmpeg`` happy path and ``FfmpegNotFoundError``.
* Platform-specific install commands.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ytd_stream.exceptions import FfmpegNotFoundError
from ytd_stream.infra.ffmpeg_detector import (
    _platform_install_commands,
    detect_ffmpeg,
    require_ffmpeg,
)

WHICH = "ytd_stream.infra.ffmpeg_detector.shutil.which"


# ---------------------------------------------------------------------------
# detect_ffmpeg
# ---------------------------------------------------------------------------

class TestDetectFfmpeg:
    @patch(WHICH, return_value="/usr/bin/ffmpeg")
    def test_found_on_path(self, mock_which: MagicMock) -> None:
        status = detect_ffmpeg()

        mock_which.assert_called_once_with("ffmpeg")
        assert status.found is True
        assert isinstance(status.path, Path)
        assert status.summary.startswith("found at")
        assert status.install_commands == ()

    @patch(WHICH, return_value=None)
    def test_not_found(self, _mock_which: MagicMock) -> None:
        status = detect_ffmpeg()

        assert status.found is False
        assert status.path is None
        assert status.summary == "not found"
        assert len(status.install_commands) > 0
        assert status.source == "PATH"
        assert status.install_hint is not None
        assert status.install_hint.startswith("Install ffmpeg using one of:")

    @patch(WHICH, return_value="/opt/ffmpeg/bin/ffmpeg")
    def test_explicit_path_probed(self, mock_which: MagicMock) -> None:
        status = detect_ffmpeg("/opt/ffmpeg/bin/ffmpeg")

        mock_which.assert_called_once_with("/opt/ffmpeg/bin/ffmpeg")
        assert status.found is True
        assert status.source == "configured"

    @patch(WHICH, return_value=None)
    def test_explicit_path_missing(self, _mock_which: MagicMock) -> None:
        status = detect_ffmpeg("/nope/ffmpeg")

        assert status.found is False
        assert status.summary == "/nope/ffmpeg is not executable"


# ---------------------------------------------------------------------------
# require_ffmpeg
# ---------------------------------------------------------------------------

class TestRequireFfmpeg:
    @patch(WHICH, return_value="/usr/bin/ffmpeg")
    def test_found_returns_path(self, _mock_which: MagicMock) -> None:
        assert isinstance(require_ffmpeg(), Path)

    @patch(WHICH, return_value=None)
    def test_missing_raises(self, _mock_which: MagicMock) -> None:
        with pytest.raises(FfmpegNotFoundError, match="not installed") as exc_info:
            require_ffmpeg()
        assert exc_info.value.hint is not None
        assert "Install ffmpeg" in exc_info.value.hint


# ---------------------------------------------------------------------------
# Platform install commands
# ---------------------------------------------------------------------------

class TestPlatformInstallCommands:
    @pytest.mark.parametrize(
        ("system", "expected"),
        [
            ("Windows", "winget install Gyan.FFmpeg"),
            ("Linux", "sudo apt install ffmpeg"),
            ("Darwin", "brew install ffmpeg"),
        ],
    )
    def test_known_platforms(self, system: str, expected: str) -> None:
        with patch("ytd_stream.infra.ffmpeg_detector.platform.system", return_value=system):
            assert expected in _platform_install_commands()

    @patch("ytd_stream.infra.ffmpeg_detector.platform.system", return_value="Plan9")
    def test_unknown_platform_gets_generic_guidance(self, _mock_sys: MagicMock) -> None:
        (cmd,) = _platform_install_commands()
        assert "ffmpeg.org" in cmd
