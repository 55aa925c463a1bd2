"""Infrastructure layer — external system integration.

This layer wraps all interaction with yt-dlp, upstream media servers,
ffmpeg and the operating system.  Every raw third-party exception must
be caught here and re-raised as a
:class:`~ytd_stream.exceptions.YtdStreamError` subclass.

Rules
-----
* No imports from ``cli`` or ``api``.
* No user-facing output (no ``print()``, no Rich rendering).
"""

from ytd_stream.infra.delivery import DeliveryEngine, DeliveryState, StreamSession
from ytd_stream.infra.ffmpeg_detector import FfmpegStatus, detect_ffmpeg, require_ffmpeg

__all__: list[str] = [
    "DeliveryEngine",
    "DeliveryState",
    "FfmpegStatus",
    "StreamSession",
    "detect_ffmpeg",
    "require_ffmpeg",
]
