"""Pure format filtering, deduplication, ranking and selection logic.

Every function in this module is a **pure** transformation — no I/O,
no side effects, fully deterministic, and trivially unit-testable.

Pipeline order (enforced by :func:`rank_formats`):

1. **Filter** — drop formats carrying neither video nor audio.
2. **Deduplicate** — collapse identical ``(quality_label, has_audio, has_video)``.
3. **Sort** — muxed → video-only → audio-only, bitrate desc within each.

:func:`resolve` then turns the ranked list into a delivery selection.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ytd_stream.core.models import (
    AudioCodecMode,
    DeliverySelection,
    DirectSelection,
    FormatDescriptor,
    MergeSelection,
    VideoMetadata,
)
from ytd_stream.exceptions import FormatNotFoundError, NoPlayableFormatError

logger = logging.getLogger(__name__)

BEST = "best"

# Containers that share a codec family for stream-copy purposes.
_CONTAINER_FAMILIES: dict[str, str] = {
    "mp4": "mp4",
    "m4a": "mp4",
    "m4v": "mp4",
    "mov": "mp4",
    "webm": "webm",
    "weba": "webm",
    "mkv": "webm",
}


# ---------------------------------------------------------------------------
# 1. Filter
# ---------------------------------------------------------------------------

def filter_playable(
    formats: Sequence[FormatDescriptor],
) -> list[FormatDescriptor]:
    """Return formats that carry video, audio, or both."""
    return [fmt for fmt in formats if fmt.has_video or fmt.has_audio]


# ---------------------------------------------------------------------------
# 2. Deduplicate
# ---------------------------------------------------------------------------

def deduplicate_formats(
    formats: Sequence[FormatDescriptor],
) -> list[FormatDescriptor]:
    """Remove duplicates keyed by ``(quality_label, has_audio, has_video)``.

    When multiple formats share the same key, the **first** occurrence
    in source order wins.
    """
    seen: set[tuple[str, bool, bool]] = set()
    result: list[FormatDescriptor] = []
    for fmt in formats:
        key = (fmt.quality_label, fmt.has_audio, fmt.has_video)
        if key not in seen:
            seen.add(key)
            result.append(fmt)
    return result


# ---------------------------------------------------------------------------
# 3. Sort
# ---------------------------------------------------------------------------

def _media_class(fmt: FormatDescriptor) -> int:
    """0 for muxed, 1 for video-only, 2 for audio-only."""
    if fmt.is_muxed:
        return 0
    if fmt.has_video:
        return 1
    return 2


def _sort_key(fmt: FormatDescriptor) -> tuple[int, float]:
    """Class first, then higher bitrate first; unknown bitrate counts as 0."""
    bitrate: float = fmt.bitrate if fmt.bitrate is not None else 0.0
    return (_media_class(fmt), -bitrate)


def sort_formats(formats: Sequence[FormatDescriptor]) -> list[FormatDescriptor]:
    """Stable sort into the three-class, bitrate-descending order."""
    return sorted(formats, key=_sort_key)


# ---------------------------------------------------------------------------
# Composite pipeline
# ---------------------------------------------------------------------------

def rank_formats(
    formats: Sequence[FormatDescriptor],
) -> list[FormatDescriptor]:
    """Run the full filter → deduplicate → sort pipeline."""
    return sort_formats(deduplicate_formats(filter_playable(formats)))


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def container_family(container: str) -> str:
    normalized = container.lower()
    return _CONTAINER_FAMILIES.get(normalized, normalized)


def pick_audio(
    video: FormatDescriptor,
    candidates: Sequence[FormatDescriptor],
) -> tuple[FormatDescriptor, AudioCodecMode] | None:
    """Choose the audio-only partner for *video*.

    Prefers the highest-bitrate audio whose container family matches the
    video (both tracks stream-copied); otherwise falls back to the best
    audio of any container, marked for re-encoding.  Returns ``None``
    when no audio-only format exists.
    """
    audio_only = [fmt for fmt in candidates if fmt.is_audio_only]
    if not audio_only:
        return None

    family = container_family(video.container)
    for fmt in audio_only:
        if container_family(fmt.container) == family:
            return fmt, AudioCodecMode.COPY
    return audio_only[0], AudioCodecMode.TRANSCODE


def _merge_with_audio(
    video: FormatDescriptor,
    candidates: Sequence[FormatDescriptor],
) -> MergeSelection:
    picked = pick_audio(video, candidates)
    if picked is None:
        raise NoPlayableFormatError(
            "No audio stream is available to pair with the video-only format.",
        )
    audio, mode = picked
    return MergeSelection(video=video, audio=audio, audio_mode=mode)


def resolve(
    metadata: VideoMetadata,
    requested_id: str | None = BEST,
) -> DeliverySelection:
    """Turn *metadata*'s formats into a delivery selection.

    Raises
    ------
    NoPlayableFormatError
        When nothing playable remains, or a video-only choice has no
        audio partner.
    FormatNotFoundError
        When *requested_id* matches no playable format.
    """
    playable = filter_playable(metadata.formats)
    if not playable:
        raise NoPlayableFormatError(
            "No downloadable formats with video or audio were found.",
        )
    ranked = sort_formats(deduplicate_formats(playable))
    # Audio partners are searched across every playable variant, not just
    # the deduplicated listing, so a container match is not lost.
    audio_pool = sort_formats([fmt for fmt in playable if fmt.is_audio_only])

    if not requested_id or requested_id == BEST:
        selection = _resolve_best(ranked, audio_pool)
    else:
        selection = _resolve_requested(requested_id, playable, audio_pool)

    _log_selection(metadata.id, selection)
    return selection


def _resolve_best(
    ranked: Sequence[FormatDescriptor],
    audio_pool: Sequence[FormatDescriptor],
) -> DeliverySelection:
    top = ranked[0]
    if top.is_muxed:
        return DirectSelection(format=top)
    if top.has_video:
        return _merge_with_audio(top, audio_pool)
    raise NoPlayableFormatError(
        "No downloadable formats with video were found.",
    )


def _resolve_requested(
    requested_id: str,
    playable: Sequence[FormatDescriptor],
    audio_pool: Sequence[FormatDescriptor],
) -> DeliverySelection:
    # Look the id up before deduplication so every listed itag is reachable.
    match = next((fmt for fmt in playable if fmt.id == requested_id), None)
    if match is None:
        raise FormatNotFoundError(
            f"Format {requested_id!r} is not available for this video.",
            hint="Request /api/info to list the available formats.",
        )
    if match.is_video_only:
        return _merge_with_audio(match, audio_pool)
    return DirectSelection(format=match)


def _log_selection(video_id: str, selection: DeliverySelection) -> None:
    if isinstance(selection, MergeSelection):
        logger.info(
            "Selected merge for %s: video=%s audio=%s audio_mode=%s",
            video_id,
            selection.video.id,
            selection.audio.id,
            selection.audio_mode.value,
        )
    else:
        logger.info("Selected direct for %s: format=%s", video_id, selection.format.id)
