"""
Tests for settings resolution: env > config file > defaults.
"""

import json
from pathlib import Path

import pytest

from clipvault.config import (
    DEFAULT_ALLOWED_MIME_TYPES,
    ConfigError,
    NormalizePolicy,
    Settings,
    load_settings,
)


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings(environ={})

        assert settings == Settings()
        assert settings.normalize_policy == NormalizePolicy.IF_NEEDED
        assert settings.public_prefix == "/files"
        assert settings.allowed_mime_types == DEFAULT_ALLOWED_MIME_TYPES
        assert settings.port == 3000

    def test_env_overrides(self, tmp_path):
        settings = load_settings(environ={
            "CLIPVAULT_MEDIA_ROOT": str(tmp_path / "m"),
            "CLIPVAULT_NORMALIZE_POLICY": "ALWAYS",
            "CLIPVAULT_MAX_WORKERS": "2",
            "CLIPVAULT_TRANSCODE_TIMEOUT": "90",
            "CLIPVAULT_ALLOWED_MIME_TYPES": "video/mp4, video/webm",
            "CLIPVAULT_LOG_LEVEL": "debug",
        })

        assert settings.media_root == tmp_path / "m"
        assert settings.normalize_policy == NormalizePolicy.ALWAYS
        assert settings.max_workers == 2
        assert settings.transcode_timeout == 90.0
        assert settings.allowed_mime_types == ("video/mp4", "video/webm")
        assert settings.log_level == "DEBUG"

    def test_empty_env_value_is_ignored(self):
        settings = load_settings(environ={"CLIPVAULT_PORT": ""})
        assert settings.port == 3000

    def test_unknown_policy_is_config_error(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings(environ={"CLIPVAULT_NORMALIZE_POLICY": "sometimes"})
        assert "sometimes" in str(exc_info.value)

    @pytest.mark.parametrize("name,value", [
        ("CLIPVAULT_MAX_WORKERS", "0"),
        ("CLIPVAULT_PORT", "abc"),
        ("CLIPVAULT_PROBE_TIMEOUT", "-1"),
    ])
    def test_invalid_numbers_are_config_errors(self, name, value):
        with pytest.raises(ConfigError):
            load_settings(environ={name: value})

    def test_file_values_apply_and_env_wins(self, tmp_path):
        config_file = tmp_path / "clipvault.json"
        config_file.write_text(json.dumps({
            "catalog_path": str(tmp_path / "catalog.json"),
            "normalize_policy": "always",
            "port": 8080,
        }))

        settings = load_settings(environ={
            "CLIPVAULT_CONFIG": str(config_file),
            "CLIPVAULT_PORT": "9000",
        })

        assert settings.catalog_path == tmp_path / "catalog.json"
        assert settings.normalize_policy == NormalizePolicy.ALWAYS
        assert settings.port == 9000

    def test_explicit_file_argument(self, tmp_path):
        config_file = tmp_path / "explicit.json"
        config_file.write_text(json.dumps({"downloader_path": "/opt/yt-dlp"}))

        settings = load_settings(environ={}, config_file=config_file)

        assert settings.downloader_path == "/opt/yt-dlp"

    def test_malformed_file_is_skipped(self, tmp_path):
        config_file = tmp_path / "broken.json"
        config_file.write_text("{oops")

        settings = load_settings(environ={"CLIPVAULT_CONFIG": str(config_file)})

        assert settings == Settings()

    def test_missing_file_is_skipped(self, tmp_path):
        settings = load_settings(environ={"CLIPVAULT_CONFIG": str(tmp_path / "nope.json")})
        assert settings == Settings()

    def test_unknown_key_in_file_is_config_error(self, tmp_path):
        config_file = tmp_path / "extra.json"
        config_file.write_text(json.dumps({"colour": "blue"}))

        with pytest.raises(ConfigError):
            load_settings(environ={}, config_file=config_file)

    @pytest.mark.parametrize("values", [
        {"max_workers": None},
        {"media_root": 5},
        {"transcode_timeout": [30]},
    ])
    def test_wrong_typed_file_value_is_config_error(self, tmp_path, values):
        config_file = tmp_path / "typed.json"
        config_file.write_text(json.dumps(values))

        with pytest.raises(ConfigError):
            load_settings(environ={}, config_file=config_file)


class TestSettings:

    def test_ensure_directories(self, tmp_path):
        settings = Settings(
            media_root=tmp_path / "a" / "media",
            catalog_path=tmp_path / "b" / "media.json",
            posts_path=tmp_path / "c" / "blog.json",
        )

        settings.ensure_directories()

        assert (tmp_path / "a" / "media").is_dir()
        assert (tmp_path / "b").is_dir()
        assert (tmp_path / "c").is_dir()

    def test_with_overrides_coerces(self):
        settings = Settings().with_overrides(media_root="elsewhere", max_workers="8")
        assert settings.media_root == Path("elsewhere")
        assert settings.max_workers == 8

    def test_settings_are_immutable(self):
        settings = Settings()
        with pytest.raises(Exception):
            settings.port = 1
