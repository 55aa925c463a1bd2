"""Tests for the stream delivery engine (infra/delivery.py).

Direct deliveries run against ``httpx.MockTransport``; merge deliveries
spawn a real child Python process standing in for ffmpeg, so process
spawn, stdout piping, exit codes and kill-on-cancel are all exercised
without a remux binary.

Coverage:
* ffmpeg command construction (copy vs transcode, headers, movflags).
* Direct piping: body, upstream headers, upstream errors before/after bytes.
* Merge piping: body, non-zero exit, spawn failure, missing ffmpeg.
* Cancellation: process killed / upstream closed, no further writes.
* Teardown happens exactly once.
"""

from __future__ import annotations

import asyncio
import sys
import textwrap
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from ytd_stream.core.models import (
    AudioCodecMode,
    DirectSelection,
    FormatDescriptor,
    MergeSelection,
)
from ytd_stream.exceptions import (
    DeliverySpawnError,
    FfmpegNotFoundError,
    StreamTransportError,
    YtdStreamError,
)
from ytd_stream.infra.delivery import (
    STREAMING_MOVFLAGS,
    DeliveryEngine,
    DeliveryState,
    StreamSession,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt(**overrides: Any) -> FormatDescriptor:
    defaults: dict[str, Any] = {
        "id": "18",
        "quality_label": "360p",
        "has_video": True,
        "has_audio": True,
        "container": "mp4",
        "bitrate": 500.0,
        "filesize": None,
        "source_url": "https://media.example/18",
    }
    defaults.update(overrides)
    return FormatDescriptor(**defaults)


def _merge(mode: AudioCodecMode = AudioCodecMode.COPY) -> MergeSelection:
    return MergeSelection(
        video=_fmt(
            id="137",
            quality_label="1080p",
            has_audio=False,
            source_url="https://media.example/137",
            http_headers=(("User-Agent", "UA/1.0"),),
        ),
        audio=_fmt(
            id="140",
            quality_label="audio",
            has_video=False,
            container="m4a",
            source_url="https://media.example/140",
        ),
        audio_mode=mode,
    )


class RecordingSink:
    """In-memory :class:`ResponseSink` that records every call."""

    def __init__(self, cancel: asyncio.Event | None = None) -> None:
        self.chunks: list[bytes] = []
        self.finished = False
        self.failed: YtdStreamError | None = None
        self.aborted: YtdStreamError | None = None
        self._cancel_on_write = cancel

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)

    async def write(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        if self._cancel_on_write is not None:
            self._cancel_on_write.set()

    async def finish(self) -> None:
        self.finished = True

    async def fail(self, error: YtdStreamError) -> None:
        self.failed = error

    async def abort(self, error: YtdStreamError) -> None:
        self.aborted = error


def _engine(handler: Any = None, **kwargs: Any) -> DeliveryEngine:
    if handler is None:
        handler = lambda request: httpx.Response(200, content=b"")  # noqa: E731
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeliveryEngine(client=client, chunk_size=4, **kwargs)


class ScriptedMergeEngine(DeliveryEngine):
    """Engine whose remux step runs a Python one-liner instead of ffmpeg."""

    def __init__(self, script: str) -> None:
        super().__init__(client=httpx.AsyncClient(), chunk_size=4)
        self._script = textwrap.dedent(script)

    def build_merge_command(self, selection: MergeSelection) -> list[str]:
        return [sys.executable, "-c", self._script]


# ---------------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------------

class TestBuildMergeCommand:
    @patch("ytd_stream.infra.delivery.require_ffmpeg", return_value=Path("/usr/bin/ffmpeg"))
    def test_copy_mode(self, _mock_require: Any) -> None:
        cmd = DeliveryEngine().build_merge_command(_merge(AudioCodecMode.COPY))

        assert cmd[0] == str(Path("/usr/bin/ffmpeg"))
        assert cmd[cmd.index("-c:v") + 1] == "copy"
        assert cmd[cmd.index("-c:a") + 1] == "copy"
        assert "-b:a" not in cmd
        assert cmd[-3:] == ["-f", "mp4", "pipe:1"]

    @patch("ytd_stream.infra.delivery.require_ffmpeg", return_value=Path("/usr/bin/ffmpeg"))
    def test_transcode_mode(self, _mock_require: Any) -> None:
        engine = DeliveryEngine(audio_bitrate="128k")
        cmd = engine.build_merge_command(_merge(AudioCodecMode.TRANSCODE))

        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-b:a") + 1] == "128k"

    @patch("ytd_stream.infra.delivery.require_ffmpeg", return_value=Path("/usr/bin/ffmpeg"))
    def test_inputs_maps_and_flags(self, _mock_require: Any) -> None:
        cmd = DeliveryEngine().build_merge_command(_merge())

        inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
        assert inputs == ["https://media.example/137", "https://media.example/140"]
        assert cmd[cmd.index("-movflags") + 1] == STREAMING_MOVFLAGS
        assert "0:v:0" in cmd
        assert "1:a:0" in cmd

    @patch("ytd_stream.infra.delivery.require_ffmpeg", return_value=Path("/usr/bin/ffmpeg"))
    def test_headers_precede_their_input(self, _mock_require: Any) -> None:
        cmd = DeliveryEngine().build_merge_command(_merge())

        headers_at = cmd.index("-headers")
        assert cmd[headers_at + 1] == "User-Agent: UA/1.0\r\n"
        assert cmd[headers_at + 2 : headers_at + 4] == ["-i", "https://media.example/137"]
        # The audio format carries no headers.
        assert cmd.count("-headers") == 1

    @patch(
        "ytd_stream.infra.delivery.require_ffmpeg",
        side_effect=FfmpegNotFoundError("ffmpeg is not installed or not on PATH."),
    )
    def test_missing_ffmpeg(self, _mock_require: Any) -> None:
        with pytest.raises(FfmpegNotFoundError):
            DeliveryEngine().build_merge_command(_merge())


# ---------------------------------------------------------------------------
# Direct delivery
# ---------------------------------------------------------------------------

class TestDirectDelivery:
    @pytest.mark.asyncio
    async def test_pipes_body_and_finishes(self) -> None:
        payload = b"0123456789abcdef"
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["ua"] = request.headers.get("user-agent", "")
            return httpx.Response(200, content=payload)

        engine = _engine(handler)
        sink = RecordingSink()
        fmt = _fmt(http_headers=(("User-Agent", "UA/2.0"),))
        session = await engine.deliver(DirectSelection(format=fmt), sink, asyncio.Event())

        assert sink.body == payload
        assert sink.finished is True
        assert sink.failed is None and sink.aborted is None
        assert session.state is DeliveryState.CLOSED
        assert session.bytes_written == len(payload)
        assert session.closed is True
        assert session.response is not None and session.response.is_closed
        assert seen == {"url": "https://media.example/18", "ua": "UA/2.0"}

    @pytest.mark.asyncio
    async def test_upstream_error_status_before_bytes(self) -> None:
        engine = _engine(lambda request: httpx.Response(403))
        sink = RecordingSink()
        session = await engine.deliver(DirectSelection(format=_fmt()), sink, asyncio.Event())

        assert isinstance(sink.failed, StreamTransportError)
        assert "403" in sink.failed.message
        assert sink.chunks == []
        assert sink.finished is False
        assert session.state is DeliveryState.FAILED

    @pytest.mark.asyncio
    async def test_connection_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        sink = RecordingSink()
        session = await _engine(handler).deliver(DirectSelection(format=_fmt()), sink, asyncio.Event())

        assert isinstance(sink.failed, StreamTransportError)
        assert session.state is DeliveryState.FAILED

    @pytest.mark.asyncio
    async def test_failure_after_bytes_aborts(self) -> None:
        async def body() -> AsyncIterator[bytes]:
            yield b"head"
            raise httpx.ReadError("connection reset")

        engine = _engine(lambda request: httpx.Response(200, content=body()))
        sink = RecordingSink()
        session = await engine.deliver(DirectSelection(format=_fmt()), sink, asyncio.Event())

        assert sink.body == b"head"
        assert sink.failed is None
        assert isinstance(sink.aborted, StreamTransportError)
        assert sink.finished is False
        assert session.state is DeliveryState.FAILED

    @pytest.mark.asyncio
    async def test_cancel_closes_upstream(self) -> None:
        async def body() -> AsyncIterator[bytes]:
            yield b"head"
            await asyncio.Event().wait()
            yield b"never"

        engine = _engine(lambda request: httpx.Response(200, content=body()))
        cancel = asyncio.Event()
        sink = RecordingSink(cancel=cancel)
        session = await asyncio.wait_for(
            engine.deliver(DirectSelection(format=_fmt()), sink, cancel),
            timeout=5,
        )

        assert sink.body == b"head"
        assert sink.finished is False
        assert sink.failed is None and sink.aborted is None
        assert session.state is DeliveryState.CANCELLED
        assert session.response is not None and session.response.is_closed

    @pytest.mark.asyncio
    async def test_preset_cancel_still_tears_down(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        sink = RecordingSink()
        engine = _engine(lambda request: httpx.Response(200, content=b"data"))
        session = await engine.deliver(DirectSelection(format=_fmt()), sink, cancel)

        assert session.state in (DeliveryState.CANCELLED, DeliveryState.CLOSED)
        assert session.closed is True


# ---------------------------------------------------------------------------
# Merge delivery
# ---------------------------------------------------------------------------

class TestMergeDelivery:
    @pytest.mark.asyncio
    async def test_pipes_process_stdout(self) -> None:
        engine = ScriptedMergeEngine(
            """
            import sys
            sys.stdout.buffer.write(b"ftyp-moov-moof-mdat")
            """
        )
        sink = RecordingSink()
        session = await engine.deliver(_merge(), sink, asyncio.Event())

        assert sink.body == b"ftyp-moov-moof-mdat"
        assert sink.finished is True
        assert session.state is DeliveryState.CLOSED
        assert session.exit_code == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_after_bytes_aborts(self) -> None:
        engine = ScriptedMergeEngine(
            """
            import sys
            sys.stdout.buffer.write(b"partial")
            sys.stdout.flush()
            sys.stderr.write("Invalid data found when processing input\\n")
            sys.exit(3)
            """
        )
        sink = RecordingSink()
        session = await engine.deliver(_merge(), sink, asyncio.Event())

        assert sink.body == b"partial"
        assert isinstance(sink.aborted, StreamTransportError)
        assert "code 3" in sink.aborted.message
        assert sink.aborted.hint is not None
        assert "Invalid data" in sink.aborted.hint
        assert sink.finished is False
        assert session.state is DeliveryState.FAILED
        assert session.exit_code == 3

    @pytest.mark.asyncio
    async def test_nonzero_exit_before_bytes_fails(self) -> None:
        engine = ScriptedMergeEngine("import sys; sys.exit(1)")
        sink = RecordingSink()
        await engine.deliver(_merge(), sink, asyncio.Event())

        assert isinstance(sink.failed, StreamTransportError)
        assert sink.chunks == []

    @pytest.mark.asyncio
    async def test_spawn_failure(self) -> None:
        class MissingBinaryEngine(DeliveryEngine):
            def build_merge_command(self, selection: MergeSelection) -> list[str]:
                return ["/nonexistent/ffmpeg-binary"]

        sink = RecordingSink()
        session = await MissingBinaryEngine().deliver(_merge(), sink, asyncio.Event())

        assert isinstance(sink.failed, DeliverySpawnError)
        assert session.state is DeliveryState.FAILED
        assert session.process is None

    @pytest.mark.asyncio
    async def test_missing_ffmpeg_reported_as_spawn_error(self) -> None:
        sink = RecordingSink()
        with patch(
            "ytd_stream.infra.delivery.require_ffmpeg",
            side_effect=FfmpegNotFoundError("ffmpeg is not installed or not on PATH.", hint="install"),
        ):
            await DeliveryEngine().deliver(_merge(), sink, asyncio.Event())

        assert isinstance(sink.failed, DeliverySpawnError)
        assert sink.failed.hint == "install"

    @pytest.mark.asyncio
    async def test_cancel_kills_process(self) -> None:
        engine = ScriptedMergeEngine(
            """
            import sys, time
            sys.stdout.buffer.write(b"frag")
            sys.stdout.flush()
            time.sleep(60)
            sys.stdout.buffer.write(b"late")
            """
        )
        cancel = asyncio.Event()
        sink = RecordingSink(cancel=cancel)
        session = await asyncio.wait_for(engine.deliver(_merge(), sink, cancel), timeout=10)

        assert sink.body == b"frag"
        assert sink.finished is False
        assert sink.failed is None and sink.aborted is None
        assert session.state is DeliveryState.CANCELLED
        assert session.process is not None
        assert session.process.returncode is not None
        assert session.exit_code == session.process.returncode


# ---------------------------------------------------------------------------
# Session teardown
# ---------------------------------------------------------------------------

class TestStreamSession:
    @pytest.mark.asyncio
    async def test_teardown_is_idempotent(self) -> None:
        session = StreamSession(DirectSelection(format=_fmt()))
        response = httpx.Response(200, content=b"x")
        closes: list[int] = []
        original = response.aclose

        async def counting_close() -> None:
            closes.append(1)
            await original()

        response.aclose = counting_close  # type: ignore[method-assign]
        session.response = response

        await session.teardown()
        await session.teardown()

        assert closes == [1]
        assert session.closed is True

    def test_terminal_states(self) -> None:
        assert DeliveryState.CLOSED.is_terminal
        assert DeliveryState.FAILED.is_terminal
        assert DeliveryState.CANCELLED.is_terminal
        assert not DeliveryState.MERGING.is_terminal
        assert not DeliveryState.DIRECT.is_terminal
