"""
Service configuration.

All knobs come from environment variables and are validated once at
startup. Invalid values stop the service with a message naming every
offending variable.
"""

import os
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


ENV_DATA_DIR = "DATA_DIR"
ENV_FFMPEG_PATH = "FFMPEG_PATH"
ENV_FFMPEG_TIMEOUT = "FFMPEG_TIMEOUT_SECONDS"
ENV_FFMPEG_KILL_GRACE = "FFMPEG_KILL_GRACE_SECONDS"
ENV_FFMPEG_TERMINAL_PROGRESS = "FFMPEG_TERMINAL_PROGRESS"
ENV_FINALIZING_PERCENT = "PROGRESS_FINALIZING_PERCENT"
ENV_MAX_UPDATES = "PROGRESS_MAX_UPDATES"
ENV_ASSUMED_FPS = "PROGRESS_ASSUMED_FPS"
ENV_RETENTION = "JOB_RETENTION_SECONDS"
ENV_POLL_INTERVAL = "STREAM_POLL_INTERVAL_SECONDS"
ENV_CORS_ORIGINS = "CORS_ALLOWED_ORIGINS"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_MAX_UPLOAD_BYTES = "MAX_UPLOAD_BYTES"

# Settings field -> environment variable
_ENV_FIELDS = {
    "data_dir": ENV_DATA_DIR,
    "ffmpeg_path": ENV_FFMPEG_PATH,
    "ffmpeg_timeout_seconds": ENV_FFMPEG_TIMEOUT,
    "ffmpeg_kill_grace_seconds": ENV_FFMPEG_KILL_GRACE,
    "show_progress_in_terminal": ENV_FFMPEG_TERMINAL_PROGRESS,
    "finalizing_progress": ENV_FINALIZING_PERCENT,
    "max_progress_updates": ENV_MAX_UPDATES,
    "assumed_frame_rate": ENV_ASSUMED_FPS,
    "job_retention_seconds": ENV_RETENTION,
    "stream_poll_interval": ENV_POLL_INTERVAL,
    "allowed_origins": ENV_CORS_ORIGINS,
    "log_level": ENV_LOG_LEVEL,
    "max_upload_bytes": ENV_MAX_UPLOAD_BYTES,
}


class SettingsError(Exception):
    """Environment configuration is missing or invalid."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("Invalid environment: " + ", ".join(problems))


class AppSettings(BaseModel):
    """Validated runtime configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Storage
    data_dir: Path = Path("./var/data")
    max_upload_bytes: int = Field(default=500 * 1024 * 1024, gt=0)

    # Encoder
    ffmpeg_path: Optional[str] = None
    ffmpeg_timeout_seconds: float = Field(default=600.0, gt=0)
    ffmpeg_kill_grace_seconds: float = Field(default=5.0, gt=0)
    show_progress_in_terminal: bool = False

    # Progress heuristics
    finalizing_progress: int = Field(default=98, ge=1, le=99)
    max_progress_updates: int = Field(default=100, ge=1)
    assumed_frame_rate: float = Field(default=25.0, gt=0)

    # Jobs & streaming
    job_retention_seconds: float = Field(default=3600.0, ge=0)
    stream_poll_interval: float = Field(default=0.2, gt=0)

    # HTTP
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def jobs_db_path(self) -> Path:
        return self.data_dir / "jobs.db"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppSettings":
        """
        Build settings from environment variables.

        Unset or empty variables keep their defaults.

        Raises:
            SettingsError: Listing each invalid variable
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[var]
            for field, var in _ENV_FIELDS.items()
            if environ.get(var, "").strip()
        }
        try:
            return cls(**values)
        except ValidationError as e:
            problems = []
            for err in e.errors():
                field = str(err["loc"][0]) if err.get("loc") else "?"
                problems.append(f"{_ENV_FIELDS.get(field, field)}: {err.get('msg', '')}")
            raise SettingsError(problems) from e
