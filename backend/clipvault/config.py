"""
ClipVault configuration.

Settings are resolved ONCE at startup and passed down explicitly.
Nothing below the HTTP layer reads the environment.

Resolution order (per key):
1. Environment variable CLIPVAULT_<KEY>
2. JSON file named by CLIPVAULT_CONFIG
3. Built-in default

The normalize policy is a single process-wide flag, never per-request.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


ENV_PREFIX = "CLIPVAULT_"
CONFIG_FILE_ENV_VAR = "CLIPVAULT_CONFIG"

DEFAULT_ALLOWED_MIME_TYPES: Tuple[str, ...] = (
    "video/mp4",
    "video/quicktime",
    "video/webm",
    "video/x-matroska",
    "video/x-m4v",
    "video/3gpp",
)

# Short-form video URLs the downloader is allowed to fetch.
DEFAULT_REMOTE_URL_PATTERNS: Tuple[str, ...] = (
    r"^https?://(www\.|m\.)?youtube\.com/shorts/[\w-]+",
    r"^https?://youtu\.be/[\w-]+",
    r"^https?://(www\.|vm\.|vt\.)?tiktok\.com/",
    r"^https?://(www\.)?instagram\.com/reels?/[\w-]+",
)


class ConfigError(Exception):
    """Configuration could not be resolved."""

    pass


class NormalizePolicy(str, Enum):
    """
    Transcode decision policy.

    ALWAYS:    every accepted source is re-encoded to the canonical profile
    IF_NEEDED: sources already in the canonical codec pair pass through
    """

    ALWAYS = "always"
    IF_NEEDED = "if_needed"


@dataclass(frozen=True)
class Settings:
    """Process-wide settings. Immutable after startup."""

    media_root: Path = Path("media")
    catalog_path: Path = Path("media.json")
    posts_path: Path = Path("blog.json")
    public_prefix: str = "/files"

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    downloader_path: str = "yt-dlp"

    probe_timeout: float = 30.0
    transcode_timeout: float = 600.0
    download_timeout: float = 300.0

    max_workers: int = 4
    normalize_policy: NormalizePolicy = NormalizePolicy.IF_NEEDED

    allowed_mime_types: Tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES
    remote_url_patterns: Tuple[str, ...] = DEFAULT_REMOTE_URL_PATTERNS

    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 3000

    def ensure_directories(self) -> None:
        """Create the media root and catalog parent directories."""
        self.media_root.mkdir(parents=True, exist_ok=True)
        self.catalog_path.parent.mkdir(parents=True, exist_ok=True)
        self.posts_path.parent.mkdir(parents=True, exist_ok=True)

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with raw overrides coerced to the right types."""
        coerced = {key: _coerce(key, value) for key, value in overrides.items()}
        return replace(self, **coerced)


_FIELD_TYPES: Dict[str, Any] = {f.name: f.type for f in fields(Settings)}


def _split_list(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(str(part) for part in value)


def _coerce(key: str, value: Any) -> Any:
    """Coerce a raw env/file value into the Settings field type."""
    if key not in _FIELD_TYPES:
        raise ConfigError(f"Unknown setting '{key}'")

    try:
        if key in ("media_root", "catalog_path", "posts_path"):
            return Path(value)
        if key in ("probe_timeout", "transcode_timeout", "download_timeout"):
            timeout = float(value)
            if timeout <= 0:
                raise ConfigError(f"{key} must be positive (got {value})")
            return timeout
        if key in ("max_workers", "port"):
            number = int(value)
            if number < 1:
                raise ConfigError(f"{key} must be >= 1 (got {value})")
            return number
        if key == "normalize_policy":
            return NormalizePolicy(str(value).strip().lower())
        if key in ("allowed_mime_types", "remote_url_patterns"):
            return _split_list(value)
        if key == "log_level":
            return str(value).upper()
    except (TypeError, ValueError) as e:
        if key == "normalize_policy":
            raise ConfigError(
                f"Unknown normalize policy '{value}'. "
                f"Valid policies: {[p.value for p in NormalizePolicy]}"
            ) from e
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e

    return str(value)


def _load_from_file(config_file: Path) -> Dict[str, Any]:
    """
    Load overrides from a JSON object file.

    Unreadable or malformed files are logged and skipped.
    """
    if not config_file.exists():
        logger.warning(f"Config file {config_file} does not exist, using defaults")
        return {}

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid config file {config_file}: {e}")
        return {}
    except OSError as e:
        logger.warning(f"Error reading config file {config_file}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Config file {config_file} must contain a JSON object, ignoring")
        return {}
    return data


def _load_from_env(environ: Mapping[str, str]) -> Dict[str, str]:
    overrides = {}
    for name in _FIELD_TYPES:
        env_name = f"{ENV_PREFIX}{name.upper()}"
        if env_name in environ and environ[env_name] != "":
            overrides[name] = environ[env_name]
    return overrides


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_file: Optional[Path] = None,
) -> Settings:
    """
    Resolve settings from environment, optional JSON file, and defaults.

    Args:
        environ: Environment mapping (defaults to os.environ)
        config_file: Explicit JSON config path (overrides CLIPVAULT_CONFIG)

    Returns:
        Resolved Settings

    Raises:
        ConfigError: If any value cannot be coerced (e.g. unknown policy)
    """
    environ = os.environ if environ is None else environ

    if config_file is None and environ.get(CONFIG_FILE_ENV_VAR):
        config_file = Path(environ[CONFIG_FILE_ENV_VAR])

    merged: Dict[str, Any] = {}
    if config_file is not None:
        merged.update(_load_from_file(config_file))
    merged.update(_load_from_env(environ))

    settings = Settings().with_overrides(**merged)
    logger.debug(
        f"Settings resolved: media_root={settings.media_root} "
        f"catalog={settings.catalog_path} policy={settings.normalize_policy.value} "
        f"workers={settings.max_workers}"
    )
    return settings
