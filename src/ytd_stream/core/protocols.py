"""Protocols (interfaces) consumed by the core layer.

These define the contracts that infrastructure and HTTP adapters must
satisfy.  Core code depends ONLY on these protocols — never on concrete
implementations — preserving the dependency inversion principle.
"""

from __future__ import annotations

from typing import Any, Protocol

from ytd_stream.exceptions import YtdStreamError


class MetadataProvider(Protocol):
    """Contract for metadata extraction backends.

    Any object that implements :meth:`fetch_info` with the correct
    signature satisfies this protocol structurally (no explicit
    inheritance required).  The call is blocking; the core runs it in a
    worker thread.
    """

    def fetch_info(self, url: str) -> dict[str, Any]:
        """Fetch raw metadata for *url* and return a provider-specific dict.

        The returned dict must contain at least:

        * ``"id"`` — video identifier (``str``)
        * ``"title"`` — video title (``str``)
        * ``"webpage_url"`` — canonical page URL (``str``)
        * ``"formats"`` — list of format dicts (``list[dict]``)

        Implementations must map all backend-specific exceptions to
        :class:`~ytd_stream.exceptions.YtdStreamError` subclasses.

        Raises
        ------
        ProviderFetchError
            When the backend fails to extract metadata.
        VideoUnavailableError
            When the target video is confirmed unavailable.
        """
        ...  # pragma: no cover


class ResponseSink(Protocol):
    """Destination of one delivery's bytes.

    The delivery engine calls exactly one terminal method —
    :meth:`finish`, :meth:`fail` or :meth:`abort` — unless the delivery
    was cancelled, in which case the sink is left alone.
    """

    async def write(self, chunk: bytes) -> None:
        """Forward *chunk* to the client."""
        ...  # pragma: no cover

    async def finish(self) -> None:
        """Signal normal end of body."""
        ...  # pragma: no cover

    async def fail(self, error: YtdStreamError) -> None:
        """Report *error* in place of a body; only called before any write."""
        ...  # pragma: no cover

    async def abort(self, error: YtdStreamError) -> None:
        """Terminate a body already in flight."""
        ...  # pragma: no cover
