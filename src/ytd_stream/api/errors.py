"""Mapping of domain errors to JSON error responses."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ytd_stream.exceptions import YtdStreamError

logger = logging.getLogger(__name__)


def error_response(error: YtdStreamError) -> JSONResponse:
    """Render *error* as ``{"error": ..., "hint": ...}`` with its status code."""
    content: dict[str, str] = {"error": error.message}
    if error.hint:
        content["hint"] = error.hint
    return JSONResponse(status_code=error.status_code, content=content)


async def handle_ytd_stream_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, YtdStreamError)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return error_response(exc)
