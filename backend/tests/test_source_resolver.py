"""
Tests for source resolution (uploads and remote downloads).

The downloader is faked at the subprocess boundary: fake_run writes the
files yt-dlp would have written for the requested output template.
"""

import subprocess
from pathlib import Path

import pytest

from conftest import FakeProber, FakeTranscoder
from clipvault.media.errors import DownloadFailed, InvalidInput, UnsupportedMediaType
from clipvault.media.models import SourceKind
from clipvault.sources import resolver as resolver_module
from clipvault.sources.resolver import (
    IngestRequest,
    RemoteSource,
    SourceResolver,
    UploadedFile,
    UploadSource,
    check_exclusive,
    check_mime,
    check_remote_url,
)

SHORTS_URL = "https://www.youtube.com/shorts/dQw4w9WgXcQ"


def make_fake_downloader(outputs, returncode=0, stderr=""):
    """
    Build a subprocess.run stand-in.

    outputs maps a suffix (e.g. ".mp4", ".f140.m4a") to file content,
    written next to the -o template with the template's prefix.
    """
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        template = cmd[cmd.index("-o") + 1]
        base = template.replace(".%(ext)s", "")
        for suffix, content in outputs.items():
            Path(base + suffix).write_text(content)
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr=stderr)

    fake_run.calls = calls
    return fake_run


@pytest.fixture
def fake_downloader_binary(monkeypatch):
    monkeypatch.setattr(resolver_module, "find_tool", lambda name: "/usr/local/bin/yt-dlp")


class TestRequestChecks:

    def test_both_sources_rejected(self):
        with pytest.raises(InvalidInput):
            check_exclusive(True, SHORTS_URL)

    def test_no_source_rejected(self):
        with pytest.raises(InvalidInput):
            check_exclusive(False, None)
        with pytest.raises(InvalidInput):
            check_exclusive(False, "   ")

    def test_non_string_url_rejected(self):
        with pytest.raises(InvalidInput):
            check_exclusive(False, 123)
        with pytest.raises(InvalidInput):
            check_exclusive(False, ["https://youtu.be/abc123"])

    def test_single_source_accepted(self):
        check_exclusive(True, None)
        check_exclusive(False, SHORTS_URL)

    def test_mime_allow_list(self):
        check_mime("video/mp4")
        check_mime("Video/MP4; codecs=avc1")
        with pytest.raises(UnsupportedMediaType):
            check_mime("image/png")
        with pytest.raises(UnsupportedMediaType):
            check_mime(None)

    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/shorts/abc_123",
        "https://youtu.be/abc123",
        "https://www.tiktok.com/@someone/video/7300000000000000000",
        "https://www.instagram.com/reel/Cxyz123/",
    ])
    def test_allowed_urls(self, url):
        assert check_remote_url(f"  {url} ") == url

    @pytest.mark.parametrize("url", [
        "https://example.com/video.mp4",
        "https://www.youtube.com/watch?v=abc123",
        "ftp://youtu.be/abc123",
        "",
    ])
    def test_rejected_urls(self, url):
        with pytest.raises(InvalidInput):
            check_remote_url(url)


class TestUploadSource:

    def test_upload_moved_into_media_root(self, media_root, write_clip):
        clip = write_clip("holiday.MOV")
        source = UploadSource(UploadedFile(clip, "video/quicktime", "holiday.MOV"), media_root)

        resolved = source.resolve("job1")

        assert resolved.local_path == media_root / "job1-upload.mov"
        assert resolved.local_path.is_file()
        assert not clip.exists()
        assert resolved.source_kind == SourceKind.UPLOAD
        assert resolved.original_name == "holiday.MOV"
        assert resolved.temp_artifacts == []

    def test_upload_already_in_media_root_keeps_name(self, media_root):
        clip = media_root / "job2-upload.mp4"
        clip.write_text("h264/aac")

        resolved = UploadSource(UploadedFile(clip, "video/mp4"), media_root).resolve("job2")

        assert resolved.local_path == clip

    def test_empty_upload_rejected(self, media_root, incoming_dir):
        empty = incoming_dir / "empty.mp4"
        empty.write_bytes(b"")
        with pytest.raises(InvalidInput):
            UploadSource(UploadedFile(empty, "video/mp4"), media_root).resolve("job3")

    def test_missing_upload_rejected(self, media_root, incoming_dir):
        with pytest.raises(InvalidInput):
            UploadSource(UploadedFile(incoming_dir / "gone.mp4", "video/mp4"), media_root).resolve("job4")


class TestMainFileSelection:

    def test_muxed_mp4_preferred(self):
        files = [Path("x-remote.f137.mp4"), Path("x-remote.f140.m4a"), Path("x-remote.mp4")]
        assert RemoteSource.select_main(files) == Path("x-remote.mp4")

    def test_mp4_beats_other_containers(self):
        files = [Path("x-remote.mkv"), Path("x-remote.f1.mp4"), Path("x-remote.webm")]
        assert RemoteSource.select_main(files) == Path("x-remote.f1.mp4")

    def test_lexical_extension_without_mp4(self):
        files = [Path("x-remote.webm"), Path("x-remote.mkv")]
        assert RemoteSource.select_main(files) == Path("x-remote.mkv")

    def test_incomplete_downloads_never_selected(self):
        files = [Path("x-remote.mp4.part"), Path("x-remote.f137.mp4.ytdl")]
        assert RemoteSource.select_main(files) is None


class TestRemoteSource:

    def test_download_selects_main_and_collects_artifacts(self, media_root, monkeypatch, fake_downloader_binary):
        fake_run = make_fake_downloader({
            ".mp4": "h264/aac",
            ".f137.mp4": "h264/",
            ".f140.m4a": "/aac",
        })
        monkeypatch.setattr(resolver_module.subprocess, "run", fake_run)

        resolved = RemoteSource(SHORTS_URL, media_root).resolve("abc")

        assert resolved.local_path == media_root / "abc-remote.mp4"
        assert sorted(p.name for p in resolved.temp_artifacts) == ["abc-remote.f137.mp4", "abc-remote.f140.m4a"]
        assert resolved.source_kind == SourceKind.REMOTE
        cmd = fake_run.calls[0]
        assert cmd[0] == "/usr/local/bin/yt-dlp"
        assert "--no-playlist" in cmd
        assert cmd[-1] == SHORTS_URL

    def test_other_downloads_untouched(self, media_root, monkeypatch, fake_downloader_binary):
        neighbour = media_root / "other-remote.mp4"
        neighbour.write_text("h264/aac")
        monkeypatch.setattr(resolver_module.subprocess, "run", make_fake_downloader({".webm": "vp9/opus"}))

        resolved = RemoteSource(SHORTS_URL, media_root).resolve("mine")

        assert resolved.local_path.name == "mine-remote.webm"
        assert resolved.temp_artifacts == []
        assert neighbour.exists()

    def test_no_files_is_download_failure(self, media_root, monkeypatch, fake_downloader_binary):
        monkeypatch.setattr(resolver_module.subprocess, "run", make_fake_downloader({}))
        with pytest.raises(DownloadFailed):
            RemoteSource(SHORTS_URL, media_root).resolve("empty")

    def test_nonzero_exit_removes_partial_files(self, media_root, monkeypatch, fake_downloader_binary):
        monkeypatch.setattr(
            resolver_module.subprocess,
            "run",
            make_fake_downloader({".f137.mp4.part": "half"}, returncode=1, stderr="ERROR: HTTP 403"),
        )

        with pytest.raises(DownloadFailed) as exc_info:
            RemoteSource(SHORTS_URL, media_root).resolve("bad")

        assert "403" in exc_info.value.details
        assert list(media_root.iterdir()) == []

    def test_timeout_is_download_failure(self, media_root, monkeypatch, fake_downloader_binary):
        def slow_run(cmd, **kwargs):
            template = cmd[cmd.index("-o") + 1]
            Path(template.replace(".%(ext)s", ".mp4.part")).write_text("partial")
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        monkeypatch.setattr(resolver_module.subprocess, "run", slow_run)

        with pytest.raises(DownloadFailed):
            RemoteSource(SHORTS_URL, media_root, timeout=1).resolve("slow")
        assert list(media_root.iterdir()) == []

    def test_missing_downloader(self, media_root, monkeypatch):
        monkeypatch.setattr(resolver_module, "find_tool", lambda name: None)
        with pytest.raises(DownloadFailed):
            RemoteSource(SHORTS_URL, media_root).resolve("nobin")

    def test_disallowed_url_rejected_before_download(self, media_root, monkeypatch, fake_downloader_binary):
        fake_run = make_fake_downloader({".mp4": "h264/aac"})
        monkeypatch.setattr(resolver_module.subprocess, "run", fake_run)

        with pytest.raises(InvalidInput):
            SourceResolver(media_root).resolve(IngestRequest(remote_url="https://example.com/a.mp4"), "x")
        assert fake_run.calls == []


class TestRemoteIngestion:
    """Remote sources through the whole pipeline."""

    def test_remote_passthrough_discards_extra_streams(self, make_pipeline, media_root, monkeypatch, fake_downloader_binary):
        monkeypatch.setattr(resolver_module.subprocess, "run", make_fake_downloader({
            ".mp4": "h264/aac|title=Skate trick",
            ".f140.m4a": "/aac",
        }))
        transcoder = FakeTranscoder()
        pipeline = make_pipeline(transcoder=transcoder)

        outcome = pipeline.run(IngestRequest(remote_url=SHORTS_URL))

        assert outcome.success
        record = outcome.record
        assert record.source_kind == SourceKind.REMOTE
        assert record.display_name == "Skate trick"
        assert transcoder.calls == []
        assert sorted(p.name for p in media_root.iterdir()) == [f"{outcome.job_id}-remote.mp4"]

    def test_remote_transcode_removes_download(self, make_pipeline, media_root, monkeypatch, fake_downloader_binary):
        monkeypatch.setattr(resolver_module.subprocess, "run", make_fake_downloader({".webm": "vp9/opus"}))
        pipeline = make_pipeline()

        outcome = pipeline.run(IngestRequest(remote_url=SHORTS_URL, title="Clip"))

        assert outcome.success
        assert outcome.record.display_name == "Clip"
        assert sorted(p.name for p in media_root.iterdir()) == [f"{outcome.job_id}-canonical.mp4"]

    def test_remote_transcode_failure_leaves_nothing(self, make_pipeline, media_root, catalog_path, monkeypatch, fake_downloader_binary):
        monkeypatch.setattr(resolver_module.subprocess, "run", make_fake_downloader({
            ".webm": "vp9/opus",
            ".f251.webm": "/opus",
        }))
        pipeline = make_pipeline(prober=FakeProber(), transcoder=FakeTranscoder(fail=True, leave_partial=True))

        outcome = pipeline.run(IngestRequest(remote_url=SHORTS_URL))

        assert not outcome.success
        assert list(media_root.iterdir()) == []
        assert not catalog_path.exists()
