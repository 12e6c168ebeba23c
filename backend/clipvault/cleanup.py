"""
Best-effort file removal.

A leftover temp file must never change an ingestion's outcome, so deletion
errors are logged and reported back as False, never raised.
"""

import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


def discard(path: Path, reason: str = "cleanup") -> bool:
    """
    Delete one file. A file that is already gone counts as deleted.

    Returns:
        False only if the file exists and could not be removed
    """
    try:
        Path(path).unlink()
        logger.debug(f"[Cleanup] Removed {path} ({reason})")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[Cleanup] Could not remove {path} ({reason}): {e}")
        return False
    return True


def discard_all(paths: Iterable[Path], reason: str = "cleanup") -> List[Path]:
    """
    Delete every path, continuing past failures.

    Returns:
        Paths that could not be removed
    """
    return [path for path in paths if not discard(path, reason)]
