"""ytd-stream — video metadata and on-demand stream delivery service.

Built on the yt-dlp Python API and ffmpeg with a strict layered architecture.
"""

from ytd_stream.version import __version__

__all__: list[str] = ["__version__"]
