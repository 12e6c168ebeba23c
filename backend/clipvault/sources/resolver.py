"""
Source resolution - turns an ingest request into one local source file.

Two source kinds:
- UploadSource: payload already materialized on disk by the multipart
  handler. MIME type checked against the allow-list, then the file is
  moved into the media root if it is not there already.
- RemoteSource: short-form video URL fetched by yt-dlp into the media
  root under a request-scoped prefix.

Isolation between concurrent requests is purely by name: every file a
resolution creates starts with the request's unique job id. No locking.

Resolution returns (local_path, temp_artifacts). The local path lives in
the media root; temp artifacts are everything else the resolution left
behind and are the pipeline's to delete.
"""

import logging
import mimetypes
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from ..cleanup import discard_all
from ..config import DEFAULT_ALLOWED_MIME_TYPES, DEFAULT_REMOTE_URL_PATTERNS, Settings
from ..execution.tools import find_tool
from ..media.errors import DownloadFailed, InvalidInput, UnsupportedMediaType
from ..media.models import SourceKind

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = 300.0

# Files yt-dlp leaves behind mid-download. Never selected as the main file.
INCOMPLETE_MARKERS = (".part", ".ytdl", ".temp")


# ============================================================================
# REQUEST / RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class UploadedFile:
    """An upload payload already written to disk by the multipart handler."""

    path: Path
    content_type: str
    filename: Optional[str] = None


@dataclass(frozen=True)
class IngestRequest:
    """
    One ingestion request. Exactly one of upload / remote_url must be set.
    """

    upload: Optional[UploadedFile] = None
    remote_url: Optional[str] = None
    title: Optional[str] = None


@dataclass
class ResolvedSource:
    """A local source file plus the incidental files produced getting it."""

    local_path: Path
    source_kind: SourceKind
    original_name: str
    temp_artifacts: List[Path] = field(default_factory=list)


# ============================================================================
# VALIDATION (usable before anything touches disk)
# ============================================================================

def check_exclusive(has_upload: bool, remote_url: Optional[str]) -> None:
    """
    Reject requests carrying both an upload and a URL, or neither.

    Raises:
        InvalidInput: If the request is not exactly one of the two, or the
            URL is not a string
    """
    if remote_url is not None and not isinstance(remote_url, str):
        raise InvalidInput("remoteUrl must be a string")
    has_url = bool(remote_url and remote_url.strip())
    if has_upload and has_url:
        raise InvalidInput("Provide either a file or a remoteUrl, not both")
    if not has_upload and not has_url:
        raise InvalidInput("Provide either a file or a remoteUrl")


def normalize_mime(content_type: Optional[str]) -> str:
    """'Video/MP4; codecs=avc1' → 'video/mp4'"""
    return (content_type or "").split(";", 1)[0].strip().lower()


def check_mime(content_type: Optional[str], allowed: Sequence[str] = DEFAULT_ALLOWED_MIME_TYPES) -> None:
    """
    Raises:
        UnsupportedMediaType: If the declared MIME type is not allowed
    """
    mime = normalize_mime(content_type)
    if mime not in {a.lower() for a in allowed}:
        raise UnsupportedMediaType(
            f"Unsupported media type '{mime or 'unknown'}'. Allowed: {', '.join(allowed)}"
        )


def check_remote_url(url: str, patterns: Sequence[str] = DEFAULT_REMOTE_URL_PATTERNS) -> str:
    """
    Returns:
        The stripped URL

    Raises:
        InvalidInput: If the URL matches none of the allowed short-form patterns
    """
    url = (url or "").strip()
    if not any(re.match(pattern, url, re.IGNORECASE) for pattern in patterns):
        raise InvalidInput(f"Unsupported remote URL: {url!r}")
    return url


def upload_extension(upload: UploadedFile) -> str:
    """Extension for a materialized upload: path suffix, then client filename, then MIME guess."""
    for candidate in (upload.path.suffix, Path(upload.filename or "").suffix):
        if candidate:
            return candidate.lower()
    return mimetypes.guess_extension(normalize_mime(upload.content_type)) or ".mp4"


def upload_name(job_id: str, extension: str) -> str:
    """Name an upload is stored under in the media root."""
    return f"{job_id}-upload{extension}"


def download_prefix(job_id: str) -> str:
    """Filename prefix shared by every file one download may produce."""
    return f"{job_id}-remote"


# ============================================================================
# SOURCES
# ============================================================================

class MediaSource(ABC):
    """A request's media, resolvable to one local file."""

    kind: SourceKind

    @abstractmethod
    def resolve(self, job_id: str) -> ResolvedSource:
        """Produce the local source file for this job."""


class UploadSource(MediaSource):
    """Upload already on disk; validated and placed in the media root."""

    kind = SourceKind.UPLOAD

    def __init__(
        self,
        upload: UploadedFile,
        media_root: Path,
        allowed_mime_types: Sequence[str] = DEFAULT_ALLOWED_MIME_TYPES,
    ):
        self.upload = upload
        self.media_root = Path(media_root)
        self.allowed_mime_types = allowed_mime_types

    def resolve(self, job_id: str) -> ResolvedSource:
        check_mime(self.upload.content_type, self.allowed_mime_types)

        path = Path(self.upload.path)
        if not path.is_file():
            raise InvalidInput(f"Uploaded file is missing: {path.name}")
        if path.stat().st_size == 0:
            raise InvalidInput("Uploaded file is empty")

        original_name = self.upload.filename or path.name

        if path.parent.resolve() != self.media_root.resolve():
            self.media_root.mkdir(parents=True, exist_ok=True)
            target = self.media_root / upload_name(job_id, upload_extension(self.upload))
            shutil.move(str(path), str(target))
            logger.info(f"[Resolver] Moved upload {path} → {target}")
            path = target

        logger.info(f"[Resolver] Upload resolved: {path.name} ({normalize_mime(self.upload.content_type)})")
        return ResolvedSource(
            local_path=path,
            source_kind=self.kind,
            original_name=original_name,
        )


class RemoteSource(MediaSource):
    """Short-form URL fetched by an external downloader."""

    kind = SourceKind.REMOTE

    def __init__(
        self,
        url: str,
        media_root: Path,
        downloader_path: str = "yt-dlp",
        timeout: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
        url_patterns: Sequence[str] = DEFAULT_REMOTE_URL_PATTERNS,
    ):
        self.url = check_remote_url(url, url_patterns)
        self.media_root = Path(media_root)
        self.downloader_path = downloader_path
        self.timeout = timeout

    def build_command(self, executable: str, prefix: str) -> List[str]:
        output_template = str(self.media_root / f"{prefix}.%(ext)s")
        return [
            executable,
            "--no-playlist",
            "--no-progress",
            "-o", output_template,
            self.url,
        ]

    def matching_files(self, prefix: str) -> List[Path]:
        """Every file in the media root produced under this prefix."""
        if not self.media_root.is_dir():
            return []
        return sorted(
            p for p in self.media_root.iterdir()
            if p.is_file() and p.name.startswith(f"{prefix}.")
        )

    @staticmethod
    def select_main(files: Sequence[Path]) -> Optional[Path]:
        """
        Pick the main download.

        Preference: .mp4, then fewest name segments (the muxed file rather
        than a per-format stream like NAME.f137.mp4), then extension, then name.
        In-progress files are never picked.
        """
        candidates = [
            p for p in files
            if not any(s.lower().startswith(INCOMPLETE_MARKERS) for s in p.suffixes)
        ]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda p: (p.suffix.lower() != ".mp4", len(p.suffixes), p.suffix.lower(), p.name),
        )

    def _fail(self, prefix: str, message: str, stderr: Optional[str] = None) -> DownloadFailed:
        leftovers = discard_all(self.matching_files(prefix), reason="failed download")
        if leftovers:
            logger.warning(f"[Resolver] {len(leftovers)} download artifact(s) could not be removed")
        logger.error(f"[Resolver] Download failed for {self.url}: {message}")
        return DownloadFailed(message, stderr=stderr)

    def resolve(self, job_id: str) -> ResolvedSource:
        prefix = download_prefix(job_id)

        executable = find_tool(self.downloader_path)
        if not executable:
            raise DownloadFailed(f"Downloader not found ({self.downloader_path})")

        self.media_root.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(executable, prefix)
        logger.info(f"[Resolver] Executing: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise self._fail(prefix, f"Download timed out after {self.timeout}s")
        except OSError as e:
            raise self._fail(prefix, f"Failed to start downloader: {e}")

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise self._fail(
                prefix,
                stderr or f"Downloader exited with code {result.returncode}",
                stderr=stderr,
            )

        files = self.matching_files(prefix)
        main = self.select_main(files)
        if main is None:
            raise self._fail(prefix, "Downloader produced no usable file")

        artifacts = [p for p in files if p != main]
        logger.info(
            f"[Resolver] Remote resolved: {main.name} "
            f"({len(artifacts)} extra artifact(s) queued for removal)"
        )
        return ResolvedSource(
            local_path=main,
            source_kind=self.kind,
            original_name=main.name,
            temp_artifacts=artifacts,
        )


# ============================================================================
# RESOLVER
# ============================================================================

class SourceResolver:
    """
    Picks the source kind for a request and resolves it.
    """

    def __init__(
        self,
        media_root: Path,
        allowed_mime_types: Sequence[str] = DEFAULT_ALLOWED_MIME_TYPES,
        remote_url_patterns: Sequence[str] = DEFAULT_REMOTE_URL_PATTERNS,
        downloader_path: str = "yt-dlp",
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
    ):
        self.media_root = Path(media_root)
        self.allowed_mime_types = tuple(allowed_mime_types)
        self.remote_url_patterns = tuple(remote_url_patterns)
        self.downloader_path = downloader_path
        self.download_timeout = download_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SourceResolver":
        return cls(
            media_root=settings.media_root,
            allowed_mime_types=settings.allowed_mime_types,
            remote_url_patterns=settings.remote_url_patterns,
            downloader_path=settings.downloader_path,
            download_timeout=settings.download_timeout,
        )

    def source_for(self, request: IngestRequest) -> MediaSource:
        """
        Raises:
            InvalidInput: Both/neither source given, or URL not allowed
        """
        check_exclusive(request.upload is not None, request.remote_url)
        if request.upload is not None:
            return UploadSource(request.upload, self.media_root, self.allowed_mime_types)
        return RemoteSource(
            request.remote_url,
            self.media_root,
            downloader_path=self.downloader_path,
            timeout=self.download_timeout,
            url_patterns=self.remote_url_patterns,
        )

    def resolve(self, request: IngestRequest, job_id: str) -> ResolvedSource:
        return self.source_for(request).resolve(job_id)
