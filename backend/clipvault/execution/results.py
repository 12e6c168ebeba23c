"""
Transcode result model.

Only successful encodes produce a TranscodeResult; failures raise
TranscodeFailed instead.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TranscodeResult(BaseModel):
    """
    Outcome of one successful encoder run.

    Carries the full command line for audit and the verified output size.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    source_path: str
    """Source file that was encoded (left untouched)."""

    output_path: str
    """Verified, non-empty output file."""

    output_bytes: int
    """Size of the output file at verification time."""

    command: List[str] = Field(default_factory=list)
    """Encoder argv, as executed."""

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def duration_seconds(self) -> Optional[float]:
        """Encode wall-clock time in seconds."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> str:
        duration = self.duration_seconds()
        duration_str = f" ({duration:.1f}s)" if duration is not None else ""
        return f"TRANSCODED{duration_str}: {self.source_path} → {self.output_path} [{self.output_bytes} bytes]"
