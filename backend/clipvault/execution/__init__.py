"""
External media tools.

ffprobe for inspection, ffmpeg for normalization. Both are black-box
binaries invoked as blocking subprocesses with bounded timeouts.
"""

from .probe import MediaProber, parse_probe_output
from .results import TranscodeResult
from .transcoder import Transcoder
from .tools import find_tool

__all__ = [
    "MediaProber",
    "parse_probe_output",
    "TranscodeResult",
    "Transcoder",
    "find_tool",
]
