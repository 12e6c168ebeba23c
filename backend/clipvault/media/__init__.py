"""
Media domain types: catalog records, probe results, error taxonomy.
"""

from .errors import (
    ErrorKind,
    IngestionError,
    InvalidInput,
    UnsupportedMediaType,
    DownloadFailed,
    ProbeFailed,
    TranscodeFailed,
    StorageFailed,
    Cancelled,
)
from .models import (
    SourceKind,
    MediaType,
    StreamDescriptor,
    ProbeResult,
    MediaRecord,
    BlogPost,
    CanonicalProfile,
    DEFAULT_PROFILE,
    PipelineOutcome,
)

__all__ = [
    # Errors
    "ErrorKind",
    "IngestionError",
    "InvalidInput",
    "UnsupportedMediaType",
    "DownloadFailed",
    "ProbeFailed",
    "TranscodeFailed",
    "StorageFailed",
    "Cancelled",
    # Models
    "SourceKind",
    "MediaType",
    "StreamDescriptor",
    "ProbeResult",
    "MediaRecord",
    "BlogPost",
    "CanonicalProfile",
    "DEFAULT_PROFILE",
    "PipelineOutcome",
]
