"""
Tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from reelhouse.settings import AppSettings, SettingsError


class TestFromEnv:

    def test_defaults(self):
        settings = AppSettings.from_env({})

        assert settings.data_dir == Path("./var/data")
        assert settings.ffmpeg_path is None
        assert settings.ffmpeg_timeout_seconds == 600
        assert settings.finalizing_progress == 98
        assert settings.job_retention_seconds == 3600
        assert settings.stream_poll_interval == 0.2
        assert settings.allowed_origins == ["*"]
        assert settings.max_upload_bytes == 500 * 1024 * 1024
        assert settings.jobs_db_path == Path("./var/data") / "jobs.db"

    def test_overrides(self):
        settings = AppSettings.from_env({
            "DATA_DIR": "/srv/reelhouse",
            "FFMPEG_PATH": "/opt/ffmpeg/bin/ffmpeg",
            "FFMPEG_TIMEOUT_SECONDS": "120",
            "FFMPEG_TERMINAL_PROGRESS": "true",
            "PROGRESS_FINALIZING_PERCENT": "95",
            "CORS_ALLOWED_ORIGINS": "http://localhost:5173, https://app.example.com",
            "MAX_UPLOAD_BYTES": "1048576",
            "LOG_LEVEL": "debug",
        })

        assert settings.data_dir == Path("/srv/reelhouse")
        assert settings.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
        assert settings.ffmpeg_timeout_seconds == 120
        assert settings.show_progress_in_terminal is True
        assert settings.finalizing_progress == 95
        assert settings.allowed_origins == ["http://localhost:5173", "https://app.example.com"]
        assert settings.log_level == "DEBUG"
        assert settings.max_upload_bytes == 1048576

    def test_empty_values_keep_defaults(self):
        settings = AppSettings.from_env({"FFMPEG_PATH": "", "LOG_LEVEL": "  "})

        assert settings.ffmpeg_path is None
        assert settings.log_level == "INFO"

    def test_invalid_values_name_each_variable(self):
        """
        GIVEN: Two malformed variables
        WHEN: Settings are loaded
        THEN: SettingsError lists both by environment name
        """
        with pytest.raises(SettingsError) as exc_info:
            AppSettings.from_env({
                "FFMPEG_TIMEOUT_SECONDS": "-1",
                "PROGRESS_FINALIZING_PERCENT": "100",
            })

        message = str(exc_info.value)
        assert "FFMPEG_TIMEOUT_SECONDS" in message
        assert "PROGRESS_FINALIZING_PERCENT" in message
        assert len(exc_info.value.problems) == 2

    def test_unknown_log_level(self):
        with pytest.raises(SettingsError) as exc_info:
            AppSettings.from_env({"LOG_LEVEL": "chatty"})

        assert "LOG_LEVEL" in str(exc_info.value)
