"""Stream delivery engine — pipes or remuxes upstream media to a sink.

A :class:`DirectSelection` is piped straight from its upstream URL over
httpx.  A :class:`MergeSelection` spawns ffmpeg with the video-only and
audio-only URLs as inputs and pipes its fragmented-MP4 stdout.

Lifecycle
---------
Each call to :meth:`DeliveryEngine.deliver` owns one
:class:`StreamSession`.  The session ends in exactly one terminal state
(``closed``, ``failed`` or ``cancelled``) and its resources — the
upstream response and/or the ffmpeg process — are released exactly once,
whichever state is reached.  Setting the cancel event (client
disconnect) kills the process and closes the upstream before any
further write to the sink.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections import deque
from collections.abc import Sequence

import httpx

from ytd_stream.core.models import (
    AudioCodecMode,
    DeliverySelection,
    DirectSelection,
    FormatDescriptor,
    MergeSelection,
)
from ytd_stream.core.protocols import ResponseSink
from ytd_stream.exceptions import (
    DeliverySpawnError,
    FfmpegNotFoundError,
    StreamTransportError,
    YtdStreamError,
)
from ytd_stream.infra.ffmpeg_detector import require_ffmpeg

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 256 * 1024
STDERR_TAIL_LINES = 20

# Fragmented MP4 with an empty leading moov: playable before the stream ends.
STREAMING_MOVFLAGS = "+frag_keyframe+empty_moov+default_base_moof"


class DeliveryState(str, enum.Enum):
    INIT = "init"
    DIRECT = "direct"
    MERGING = "merging"
    CLOSED = "closed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryState.CLOSED, DeliveryState.FAILED, DeliveryState.CANCELLED)


class StreamSession:
    """Live resources and bookkeeping of one in-flight delivery."""

    def __init__(self, selection: DeliverySelection) -> None:
        self.selection = selection
        self.state = DeliveryState.INIT
        self.bytes_written = 0
        self.process: asyncio.subprocess.Process | None = None
        self.response: httpx.Response | None = None
        self.exit_code: int | None = None
        self.stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, sink: ResponseSink, chunk: bytes) -> None:
        await sink.write(chunk)
        self.bytes_written += len(chunk)

    def watch_stderr(self, stream: asyncio.StreamReader) -> None:
        """Drain *stream* in the background so the process never blocks on it."""
        self._stderr_task = asyncio.create_task(self._drain(stream))

    async def _drain(self, stream: asyncio.StreamReader) -> None:
        async for line in stream:
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self.stderr_tail.append(text)

    async def wait_stderr(self) -> None:
        if self._stderr_task is not None:
            await self._stderr_task

    async def teardown(self) -> None:
        """Release the process and the upstream connection (idempotent)."""
        if self._closed:
            return
        self._closed = True

        process = self.process
        if process is not None:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            self.exit_code = await process.wait()

        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
            await asyncio.gather(self._stderr_task, return_exceptions=True)

        if self.response is not None:
            await self.response.aclose()

        logger.info(
            "Delivery ended: state=%s bytes=%d exit_code=%s",
            self.state.value,
            self.bytes_written,
            self.exit_code,
        )


class DeliveryEngine:
    """Runs deliveries; one instance is shared by all requests.

    Parameters
    ----------
    client:
        Async HTTP client used for direct upstream piping.  Created (and
        owned) by the engine when not supplied.
    ffmpeg_path:
        Explicit remux binary; located on ``PATH`` when ``None``.
    chunk_size:
        Maximum bytes moved per read/write step.
    audio_bitrate:
        AAC bitrate used when the selection requires audio re-encoding.
    connect_timeout:
        Seconds allowed to connect to an upstream.  Reads are unbounded.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        ffmpeg_path: str | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        audio_bitrate: str = "192k",
        connect_timeout: float = 15.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout),
            follow_redirects=True,
        )
        self._ffmpeg_path = ffmpeg_path
        self._chunk_size = chunk_size
        self._audio_bitrate = audio_bitrate

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Command construction (pure)
    # ------------------------------------------------------------------

    @staticmethod
    def _header_args(fmt: FormatDescriptor) -> list[str]:
        if not fmt.http_headers:
            return []
        return ["-headers", "".join(f"{name}: {value}\r\n" for name, value in fmt.http_headers)]

    def build_merge_command(self, selection: MergeSelection) -> list[str]:
        """Build the ffmpeg argv remuxing *selection* to MP4 on stdout.

        Raises
        ------
        FfmpegNotFoundError
            If no ffmpeg binary can be located.
        """
        ffmpeg = str(require_ffmpeg(self._ffmpeg_path))
        if selection.audio_mode is AudioCodecMode.COPY:
            audio_args = ["-c:a", "copy"]
        else:
            audio_args = ["-c:a", "aac", "-b:a", self._audio_bitrate]

        return [
            ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-nostdin",
            *self._header_args(selection.video),
            "-i", selection.video.source_url,
            *self._header_args(selection.audio),
            "-i", selection.audio.source_url,
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            *audio_args,
            "-movflags", STREAMING_MOVFLAGS,
            "-f", "mp4",
            "pipe:1",
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def deliver(
        self,
        selection: DeliverySelection,
        sink: ResponseSink,
        cancel: asyncio.Event,
    ) -> StreamSession:
        """Deliver *selection* into *sink* until done, failed or cancelled.

        Failures are reported to *sink* (``fail`` before the first byte,
        ``abort`` after); nothing is raised to the caller.  The finished
        session is returned for diagnostics.
        """
        session = StreamSession(selection)
        pump = asyncio.create_task(self._run(session, sink))
        cancelled = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait({pump, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not pump.done():
                logger.info(
                    "Client disconnected after %d bytes; cancelling delivery",
                    session.bytes_written,
                )
                pump.cancel()
            await asyncio.gather(pump, cancelled, return_exceptions=True)
            if not session.state.is_terminal:
                session.state = DeliveryState.CANCELLED
            await session.teardown()

        if not pump.cancelled() and pump.exception() is not None:
            logger.error("Delivery sink failed", exc_info=pump.exception())
        return session

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run(self, session: StreamSession, sink: ResponseSink) -> None:
        try:
            if isinstance(session.selection, MergeSelection):
                await self._run_merge(session, sink)
            else:
                await self._run_direct(session, sink)
        except YtdStreamError as exc:
            await self._report_failure(session, sink, exc)
        except Exception as exc:
            error = StreamTransportError(f"Unexpected delivery error: {exc}")
            error.__cause__ = exc
            await self._report_failure(session, sink, error)
        else:
            session.state = DeliveryState.CLOSED
            await sink.finish()

    async def _report_failure(
        self,
        session: StreamSession,
        sink: ResponseSink,
        error: YtdStreamError,
    ) -> None:
        session.state = DeliveryState.FAILED
        if session.bytes_written == 0:
            logger.error("Delivery failed before streaming: %s", error)
            await sink.fail(error)
        else:
            logger.warning(
                "Delivery failed after %d bytes, terminating connection: %s",
                session.bytes_written,
                error,
            )
            await sink.abort(error)

    async def _run_direct(self, session: StreamSession, sink: ResponseSink) -> None:
        assert isinstance(session.selection, DirectSelection)
        fmt = session.selection.format
        session.state = DeliveryState.DIRECT
        request = self._client.build_request("GET", fmt.source_url, headers=dict(fmt.http_headers))
        try:
            session.response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise StreamTransportError(f"Could not open upstream stream: {exc}") from exc

        response = session.response
        if response.is_error:
            raise StreamTransportError(f"Upstream responded with HTTP {response.status_code}")
        logger.info("Piping format %s directly (HTTP %d)", fmt.id, response.status_code)

        try:
            async for chunk in response.aiter_bytes(self._chunk_size):
                await session.write(sink, chunk)
        except httpx.HTTPError as exc:
            raise StreamTransportError(f"Upstream stream interrupted: {exc}") from exc

    async def _run_merge(self, session: StreamSession, sink: ResponseSink) -> None:
        selection = session.selection
        assert isinstance(selection, MergeSelection)
        try:
            command = self.build_merge_command(selection)
        except FfmpegNotFoundError as exc:
            raise DeliverySpawnError(exc.message, hint=exc.hint) from exc

        session.state = DeliveryState.MERGING
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise DeliverySpawnError(f"Could not start remux process: {exc}") from exc

        session.process = process
        logger.info(
            "Remuxing video=%s audio=%s (audio %s) in pid %d",
            selection.video.id,
            selection.audio.id,
            selection.audio_mode.value,
            process.pid,
        )
        assert process.stdout is not None and process.stderr is not None
        session.watch_stderr(process.stderr)

        while True:
            chunk = await process.stdout.read(self._chunk_size)
            if not chunk:
                break
            await session.write(sink, chunk)

        session.exit_code = await process.wait()
        await session.wait_stderr()
        if session.exit_code != 0:
            raise StreamTransportError(
                f"Remux process exited with code {session.exit_code}",
                hint=_join_tail(session.stderr_tail),
            )


def _join_tail(lines: Sequence[str]) -> str | None:
    return "\n".join(lines) if lines else None
