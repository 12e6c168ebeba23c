"""
Media data models.

MediaRecord and BlogPost are the persisted catalog entries (pydantic, frozen,
camelCase on the wire). ProbeResult and CanonicalProfile are in-process
value types used by the pipeline to make its transcode decision.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import IngestionError


class SourceKind(str, Enum):
    """Where an ingested clip came from."""

    UPLOAD = "upload"
    REMOTE = "remote"


class MediaType(str, Enum):
    """Stream types the pipeline cares about. Everything else is dropped at probe time."""

    VIDEO = "video"
    AUDIO = "audio"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# PROBE RESULTS
# ============================================================================

@dataclass(frozen=True)
class StreamDescriptor:
    """One stream reported by the inspector."""

    media_type: MediaType
    codec_name: str


@dataclass(frozen=True)
class ProbeResult:
    """
    Structured output of a media probe.

    streams keeps the inspector's order. format_tags holds container-level
    tags (e.g. an embedded title) exactly as reported.
    """

    streams: Tuple[StreamDescriptor, ...] = ()
    format_tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ProbeResult":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.streams and not self.format_tags

    def _first_codec(self, media_type: MediaType) -> Optional[str]:
        for stream in self.streams:
            if stream.media_type == media_type:
                return stream.codec_name
        return None

    @property
    def video_codec(self) -> Optional[str]:
        return self._first_codec(MediaType.VIDEO)

    @property
    def audio_codec(self) -> Optional[str]:
        return self._first_codec(MediaType.AUDIO)

    @property
    def title(self) -> Optional[str]:
        """Embedded container title, matched case-insensitively. Blank titles count as absent."""
        for key, value in self.format_tags.items():
            if key.lower() == "title" and value and value.strip():
                return value.strip()
        return None

    def matches(self, profile: "CanonicalProfile") -> bool:
        """True only when both the video and audio codec already match the profile."""
        video = self.video_codec
        audio = self.audio_codec
        if video is None or audio is None:
            return False
        return (
            video.lower() == profile.video_codec
            and audio.lower() == profile.audio_codec
        )


# ============================================================================
# CANONICAL PROFILE
# ============================================================================

@dataclass(frozen=True)
class CanonicalProfile:
    """
    Fixed normalization target.

    video_codec/audio_codec are the names ffprobe reports; the *_encoder
    fields are what ffmpeg is told to use to produce them.
    """

    video_codec: str = "h264"
    audio_codec: str = "aac"
    video_encoder: str = "libx264"
    audio_encoder: str = "aac"
    container_flags: Tuple[str, ...] = ("-movflags", "+faststart")
    extension: str = "mp4"
    final_suffix: str = "-canonical"

    def final_name(self, job_id: str) -> str:
        """Deterministic output filename for a transcoded clip."""
        return f"{job_id}{self.final_suffix}.{self.extension}"


DEFAULT_PROFILE = CanonicalProfile()


# ============================================================================
# CATALOG ENTRIES
# ============================================================================

class MediaRecord(BaseModel):
    """
    Catalog entry for one accepted clip.

    Immutable once appended. relative_url points under the served media root
    and the referenced file exists at the moment the record is committed.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    id: str
    display_name: str = Field(alias="displayName", min_length=1)
    relative_url: str = Field(alias="relativeURL")
    created_at: datetime = Field(alias="createdAt")
    source_kind: SourceKind = Field(alias="sourceKind")
    codec_tags: Optional[Dict[str, str]] = Field(default=None, alias="codecTags")


class BlogPost(BaseModel):
    """
    Blog post entry. The client body is kept as sent; the server owns id and createdAt.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: str
    created_at: datetime = Field(alias="createdAt")


# ============================================================================
# PIPELINE OUTCOME
# ============================================================================

@dataclass(frozen=True)
class PipelineOutcome:
    """
    Result of one pipeline invocation: a committed record or a typed error.
    """

    job_id: str
    record: Optional[MediaRecord] = None
    error: Optional[IngestionError] = None

    def __post_init__(self) -> None:
        if (self.record is None) == (self.error is None):
            raise ValueError("PipelineOutcome needs exactly one of record or error")

    @property
    def success(self) -> bool:
        return self.record is not None

    def unwrap(self) -> MediaRecord:
        """Return the record, or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.record
