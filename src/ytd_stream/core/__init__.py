"""Core / service layer — business logic and data transformations.

Rules
-----
* No ``print()`` calls.
* No filesystem or network I/O except through injected protocols.
* No imports from ``cli``, ``api`` or ``infra``.
"""

from ytd_stream.core.metadata_cache import MetadataCache
from ytd_stream.core.metadata_service import MetadataService
from ytd_stream.core.models import (
    AudioCodecMode,
    DeliverySelection,
    DirectSelection,
    FormatDescriptor,
    MergeSelection,
    VideoMetadata,
)
from ytd_stream.core.protocols import MetadataProvider, ResponseSink

__all__: list[str] = [
    "AudioCodecMode",
    "DeliverySelection",
    "DirectSelection",
    "FormatDescriptor",
    "MergeSelection",
    "MetadataCache",
    "MetadataProvider",
    "MetadataService",
    "ResponseSink",
    "VideoMetadata",
]
