"""
Shared fixtures for the ClipVault test suite.

External tools are never required. The pipeline gets duck-typed fakes:
a clip's file content encodes what the fake prober reports, e.g.

    "h264/aac"                 → video h264, audio aac
    "hevc/opus|title=Holiday"  → video hevc, audio opus, format title tag
"""

import threading
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from clipvault.catalog.store import JsonCatalogStore
from clipvault.config import NormalizePolicy, Settings
from clipvault.execution.results import TranscodeResult
from clipvault.media.errors import ProbeFailed, TranscodeFailed
from clipvault.media.models import (
    DEFAULT_PROFILE,
    MediaRecord,
    MediaType,
    ProbeResult,
    StreamDescriptor,
)
from clipvault.services.ingestion import IngestionPipeline
from clipvault.sources.resolver import SourceResolver


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")


def clip_content(video: str = "h264", audio: str = "aac", title: Optional[str] = None) -> str:
    content = f"{video}/{audio}"
    if title is not None:
        content += f"|title={title}"
    return content


def is_canonical_output(path: Path) -> bool:
    return path.name.endswith(f"{DEFAULT_PROFILE.final_suffix}.{DEFAULT_PROFILE.extension}")


class FakeProber:
    """Reads the codec pair (and optional title) back out of the file content."""

    def __init__(self, fail_source: bool = False, fail_output: bool = False):
        self.fail_source = fail_source
        self.fail_output = fail_output
        self.calls: List[Path] = []
        self._lock = threading.Lock()

    def probe(self, path) -> ProbeResult:
        path = Path(path)
        with self._lock:
            self.calls.append(path)

        output = is_canonical_output(path)
        if (output and self.fail_output) or (not output and self.fail_source):
            raise ProbeFailed(f"fake ffprobe refused {path.name}")

        codecs, _, title = path.read_text().partition("|title=")
        video, _, audio = codecs.partition("/")
        streams = []
        if video:
            streams.append(StreamDescriptor(MediaType.VIDEO, video))
        if audio:
            streams.append(StreamDescriptor(MediaType.AUDIO, audio))
        tags = {"title": title} if title else {}
        return ProbeResult(streams=tuple(streams), format_tags=tags)


class FakeTranscoder:
    """Writes a canonical clip to the destination, or fails like a crashed encoder."""

    def __init__(self, fail: bool = False, leave_partial: bool = False):
        self.fail = fail
        self.leave_partial = leave_partial
        self.calls: List[Tuple[Path, Path]] = []
        self._lock = threading.Lock()

    def transcode(self, source, destination) -> TranscodeResult:
        source, destination = Path(source), Path(destination)
        with self._lock:
            self.calls.append((source, destination))
        assert source.is_file(), "source must exist while encoding"

        if self.fail:
            if self.leave_partial:
                destination.write_text("half-written")
            raise TranscodeFailed("fake ffmpeg crashed")

        destination.write_text(clip_content("h264", "aac"))
        return TranscodeResult(
            source_path=str(source),
            output_path=str(destination),
            output_bytes=destination.stat().st_size,
        )


@pytest.fixture
def media_root(tmp_path) -> Path:
    root = tmp_path / "media"
    root.mkdir()
    return root


@pytest.fixture
def incoming_dir(tmp_path) -> Path:
    incoming = tmp_path / "incoming"
    incoming.mkdir()
    return incoming


@pytest.fixture
def catalog_path(tmp_path) -> Path:
    return tmp_path / "media.json"


@pytest.fixture
def catalog(catalog_path) -> JsonCatalogStore:
    return JsonCatalogStore(catalog_path, MediaRecord)


@pytest.fixture
def write_clip(incoming_dir):
    """Factory: write a fake clip into the incoming dir and return its path."""

    def _write(name: str = "clip.mp4", video: str = "h264", audio: str = "aac", title: Optional[str] = None) -> Path:
        path = incoming_dir / name
        path.write_text(clip_content(video, audio, title))
        return path

    return _write


@pytest.fixture
def make_pipeline(media_root, catalog):
    """Factory: pipeline over tmp dirs with fake tools."""

    def _make(
        policy: NormalizePolicy = NormalizePolicy.IF_NEEDED,
        prober: Optional[FakeProber] = None,
        transcoder: Optional[FakeTranscoder] = None,
        store: Optional[JsonCatalogStore] = None,
    ) -> IngestionPipeline:
        return IngestionPipeline(
            resolver=SourceResolver(media_root),
            prober=prober or FakeProber(),
            transcoder=transcoder or FakeTranscoder(),
            catalog=store if store is not None else catalog,
            media_root=media_root,
            policy=policy,
        )

    return _make


@pytest.fixture
def settings(tmp_path, media_root, catalog_path) -> Settings:
    return Settings(
        media_root=media_root,
        catalog_path=catalog_path,
        posts_path=tmp_path / "blog.json",
        max_workers=4,
    )
