"""
Source resolution: uploads and remote short-form URLs.
"""

from .resolver import (
    IngestRequest,
    UploadedFile,
    ResolvedSource,
    MediaSource,
    UploadSource,
    RemoteSource,
    SourceResolver,
    check_exclusive,
    check_mime,
    check_remote_url,
)

__all__ = [
    "IngestRequest",
    "UploadedFile",
    "ResolvedSource",
    "MediaSource",
    "UploadSource",
    "RemoteSource",
    "SourceResolver",
    "check_exclusive",
    "check_mime",
    "check_remote_url",
]
