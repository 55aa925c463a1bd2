"""Route handlers for ``/api/health``, ``/api/info``, ``/api/download`` and ``/api/stream``."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Query, Request

from ytd_stream.api.responses import DeliveryResponse
from ytd_stream.core import format_resolver
from ytd_stream.core.filenames import sanitize_filename
from ytd_stream.core.metadata_service import MetadataService
from ytd_stream.core.models import VideoMetadata
from ytd_stream.exceptions import NoPlayableFormatError
from ytd_stream.infra.delivery import DeliveryEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _metadata_service(request: Request) -> MetadataService:
    return request.app.state.metadata_service


def _engine(request: Request) -> DeliveryEngine:
    return request.app.state.delivery_engine


def info_payload(metadata: VideoMetadata) -> dict[str, Any]:
    """Client-facing JSON for *metadata*, formats in ranked order.

    Raises
    ------
    NoPlayableFormatError
        When no listed format carries video or audio.
    """
    formats = format_resolver.rank_formats(metadata.formats)
    if not formats:
        raise NoPlayableFormatError(
            "No downloadable formats with video or audio were found.",
        )
    return {
        "videoId": metadata.id,
        "title": metadata.title,
        "author": metadata.author,
        "lengthSeconds": metadata.duration_seconds,
        "thumbnails": [thumbnail.to_dict() for thumbnail in metadata.thumbnails],
        "url": metadata.canonical_url,
        "formats": [fmt.to_dict() for fmt in formats],
    }


@router.get("/health")
async def health() -> dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/info")
async def info(request: Request, url: str = Query("")) -> dict[str, Any]:
    metadata = await _metadata_service(request).get_metadata(url)
    return info_payload(metadata)


async def _deliver(request: Request, url: str, itag: str, *, attachment: bool) -> DeliveryResponse:
    logger.info("Processing %s for %s, itag %s", request.url.path, url, itag or format_resolver.BEST)
    metadata = await _metadata_service(request).get_metadata(url)
    selection = format_resolver.resolve(metadata, itag)

    headers: dict[str, str] = {}
    if attachment:
        filename = sanitize_filename(metadata.title)
        headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return DeliveryResponse(_engine(request), selection, headers=headers)


@router.get("/download")
async def download(
    request: Request,
    url: str = Query(""),
    itag: str = Query(format_resolver.BEST),
) -> DeliveryResponse:
    return await _deliver(request, url, itag, attachment=True)


@router.get("/stream")
async def stream(
    request: Request,
    url: str = Query(""),
    itag: str = Query(format_resolver.BEST),
) -> DeliveryResponse:
    return await _deliver(request, url, itag, attachment=False)
