"""
Media probe - ffprobe wrapper.

Command:
    ffprobe -v error -print_format json -show_streams -show_format INPUT

Probing is a pure read: the inspected file is never moved or modified.

Exit code != 0, timeout, missing binary, or unparsable JSON → ProbeFailed.
No retries. Whether a ProbeFailed is fatal is the pipeline's call.
"""

import json
import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Dict, List, Union

from ..media.errors import ProbeFailed
from ..media.models import MediaType, ProbeResult, StreamDescriptor
from .tools import find_tool

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 30.0


def parse_probe_output(raw: str) -> ProbeResult:
    """
    Parse ffprobe JSON output into a ProbeResult.

    Only video and audio streams are kept, in reported order.
    Format tags are stringified.

    Raises:
        ProbeFailed: If the output is not the expected JSON shape
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProbeFailed(f"Unparsable ffprobe output: {e}") from e

    if not isinstance(data, dict):
        raise ProbeFailed("Unparsable ffprobe output: expected a JSON object")

    raw_streams = data.get("streams", [])
    if not isinstance(raw_streams, list):
        raise ProbeFailed("Unparsable ffprobe output: 'streams' is not a list")

    streams: List[StreamDescriptor] = []
    for entry in raw_streams:
        if not isinstance(entry, dict):
            continue
        codec_type = entry.get("codec_type")
        codec_name = entry.get("codec_name")
        if codec_type not in (MediaType.VIDEO.value, MediaType.AUDIO.value) or not codec_name:
            continue
        streams.append(StreamDescriptor(
            media_type=MediaType(codec_type),
            codec_name=str(codec_name).lower(),
        ))

    format_tags: Dict[str, str] = {}
    fmt = data.get("format")
    if isinstance(fmt, dict):
        tags: Any = fmt.get("tags") or {}
        if isinstance(tags, dict):
            format_tags = {str(k): str(v) for k, v in tags.items()}

    return ProbeResult(streams=tuple(streams), format_tags=format_tags)


class MediaProber:
    """
    Runs ffprobe on a file and returns structured stream metadata.
    """

    def __init__(
        self,
        ffprobe_path: str = "ffprobe",
        timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def build_command(self, executable: str, path: Union[str, Path]) -> List[str]:
        return [
            executable,
            "-v", "error",              # Only show errors
            "-print_format", "json",    # Machine-readable output
            "-show_streams",
            "-show_format",
            str(path),
        ]

    def probe(self, path: Union[str, Path]) -> ProbeResult:
        """
        Probe a media file.

        Args:
            path: File to inspect

        Returns:
            ProbeResult with streams and container tags

        Raises:
            ProbeFailed: On missing binary/file, non-zero exit, timeout, or bad output
        """
        start_time = time.monotonic()
        path = Path(path)

        if not path.is_file():
            raise ProbeFailed(f"File not found: {path}")

        executable = find_tool(self.ffprobe_path)
        if not executable:
            raise ProbeFailed(f"ffprobe not found ({self.ffprobe_path})")

        cmd = self.build_command(executable, path)
        logger.info(f"[FFprobe] Executing: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"[FFprobe] Timed out after {self.timeout}s: {path}")
            raise ProbeFailed(f"ffprobe timed out after {self.timeout}s") from e
        except OSError as e:
            raise ProbeFailed(f"Failed to start ffprobe: {e}") from e

        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            logger.warning(f"[FFprobe] Exit code {result.returncode} for {path}: {stderr}")
            raise ProbeFailed(
                stderr or f"ffprobe exited with code {result.returncode}",
                stderr=stderr,
            )

        probe_result = parse_probe_output(result.stdout)
        logger.info(
            f"[FFprobe] path={path.name} video={probe_result.video_codec} "
            f"audio={probe_result.audio_codec} ms={elapsed_ms}"
        )
        return probe_result
