"""FastAPI application factory.

Long-lived collaborators (metadata cache, provider, delivery engine) are
built once here and attached to ``app.state``; request handlers reach
them only through the app, never through module globals.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ytd_stream.api.errors import handle_ytd_stream_error
from ytd_stream.api.routes import router
from ytd_stream.config import Settings
from ytd_stream.core.metadata_cache import MetadataCache
from ytd_stream.core.metadata_service import MetadataService
from ytd_stream.core.protocols import MetadataProvider
from ytd_stream.exceptions import YtdStreamError
from ytd_stream.infra.delivery import DeliveryEngine
from ytd_stream.version import __version__


def create_app(
    settings: Settings | None = None,
    *,
    provider: MetadataProvider | None = None,
    cache: MetadataCache | None = None,
    engine: DeliveryEngine | None = None,
) -> FastAPI:
    """Build the HTTP application.

    Parameters
    ----------
    settings:
        Runtime configuration; read from the environment when omitted.
    provider, cache, engine:
        Overrides for the default yt-dlp provider, a fresh cache and an
        engine configured from *settings*.
    """
    settings = settings or Settings()
    if provider is None:
        from ytd_stream.infra.ytdlp_provider import YtDlpMetadataProvider

        provider = YtDlpMetadataProvider()
    cache = cache or MetadataCache()
    engine = engine or DeliveryEngine(
        ffmpeg_path=settings.ffmpeg_path,
        chunk_size=settings.chunk_size,
        audio_bitrate=settings.audio_bitrate,
        connect_timeout=settings.upstream_connect_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await engine.aclose()

    app = FastAPI(title="ytd-stream", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_exception_handler(YtdStreamError, handle_ytd_stream_error)
    app.include_router(router)

    app.state.settings = settings
    app.state.metadata_service = MetadataService(provider, cache)
    app.state.delivery_engine = engine
    return app
