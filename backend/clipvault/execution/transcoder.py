"""
FFmpeg transcoder.

Rewrites one source file into the canonical profile:
    ffmpeg -y -i SRC -c:v <video_encoder> -c:a <audio_encoder> <container flags> DST

Design rules:
- One subprocess per call, blocking from the caller's point of view
- Capture stdout + stderr for audit
- Log the full command string
- Non-zero exit code = TranscodeFailed
- Bounded wall clock; on timeout the encoder is killed
- Output must exist and be non-empty
- Any failure removes the (partial) destination before raising
- The source file is never touched
"""

import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import List, Union

from ..cleanup import discard
from ..media.errors import TranscodeFailed
from ..media.models import CanonicalProfile, DEFAULT_PROFILE
from .results import TranscodeResult
from .tools import find_tool

logger = logging.getLogger(__name__)

DEFAULT_TRANSCODE_TIMEOUT_SECONDS = 600.0


class Transcoder:
    """
    FFmpeg-based encoder with a fixed target profile.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = DEFAULT_TRANSCODE_TIMEOUT_SECONDS,
        profile: CanonicalProfile = DEFAULT_PROFILE,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.profile = profile

    @property
    def available(self) -> bool:
        """Check if ffmpeg is installed and accessible."""
        return find_tool(self.ffmpeg_path) is not None

    def build_command(self, executable: str, source_path: str, output_path: str) -> List[str]:
        """Build FFmpeg command line arguments."""
        cmd = [executable, "-y"]  # -y to overwrite output
        cmd.extend(["-i", source_path])
        cmd.extend(["-c:v", self.profile.video_encoder])
        cmd.extend(["-c:a", self.profile.audio_encoder])
        cmd.extend(self.profile.container_flags)
        cmd.append(output_path)
        return cmd

    def transcode(
        self,
        source: Union[str, Path],
        destination: Union[str, Path],
    ) -> TranscodeResult:
        """
        Encode source into destination using the canonical profile.

        Returns:
            TranscodeResult for a verified, non-empty output

        Raises:
            TranscodeFailed: On missing binary, non-zero exit, timeout, or empty output
        """
        start_time = datetime.now()
        source = Path(source)
        destination = Path(destination)

        if not source.is_file():
            raise TranscodeFailed(f"Source file not found: {source}")
        if source.resolve() == destination.resolve():
            raise TranscodeFailed(f"Source and destination are the same file: {source}")

        executable = find_tool(self.ffmpeg_path)
        if not executable:
            raise TranscodeFailed(f"ffmpeg not found ({self.ffmpeg_path})")

        destination.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(executable, str(source), str(destination))
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            discard(destination, "partial transcode output")
            raise TranscodeFailed(f"Failed to start ffmpeg: {e}") from e

        logger.info(f"[FFmpeg] Started PID {process.pid} for {source.name}")

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            logger.warning(f"[FFmpeg] PID {process.pid} exceeded {self.timeout}s, killing")
            process.kill()
            process.communicate()
            discard(destination, "partial transcode output")
            raise TranscodeFailed(f"ffmpeg timed out after {self.timeout}s") from e

        exit_code = process.returncode
        logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")

        # Non-zero exit = FAILED
        if exit_code != 0:
            stderr = (stderr or "").strip()
            failure_reason = stderr or f"ffmpeg exited with code {exit_code}"
            logger.error(f"[FFmpeg] Failed: {failure_reason}")
            discard(destination, "partial transcode output")
            raise TranscodeFailed(failure_reason, stderr=stderr)

        # Verify output exists and is non-empty
        try:
            output_bytes = os.path.getsize(destination)
        except OSError:
            raise TranscodeFailed("Output file was not created")
        if output_bytes == 0:
            discard(destination, "partial transcode output")
            raise TranscodeFailed("Output file is empty")

        result = TranscodeResult(
            source_path=str(source),
            output_path=str(destination),
            output_bytes=output_bytes,
            command=cmd,
            started_at=start_time,
            completed_at=datetime.now(),
        )
        logger.info(f"[FFmpeg] {result.summary()}")
        return result
