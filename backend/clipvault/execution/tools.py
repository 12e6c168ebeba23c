"""
Lookup for external binaries (ffmpeg, ffprobe, yt-dlp).
"""

import os
import shutil
from typing import Optional

# Common install locations checked when the binary is not on PATH
COMMON_BIN_DIRS = (
    "/usr/local/bin",
    "/usr/bin",
    "/opt/homebrew/bin",
)


def find_tool(configured: str) -> Optional[str]:
    """
    Resolve a configured tool name or path to an executable path.

    Absolute/relative paths are used as-is if executable. Bare names are
    searched on PATH, then in common install locations.

    Returns:
        Executable path, or None if not found
    """
    if os.sep in configured:
        if os.path.isfile(configured) and os.access(configured, os.X_OK):
            return configured
        return None

    found = shutil.which(configured)
    if found:
        return found

    for bin_dir in COMMON_BIN_DIRS:
        candidate = os.path.join(bin_dir, configured)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    return None
