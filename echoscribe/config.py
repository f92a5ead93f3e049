"""
echoscribe.config - Application directories and persisted user settings.

Settings live in a single JSON file that is read fresh at the start of each
operation and written wholesale on every change. There is no locking; the
last writer wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from echoscribe.catalog import DEFAULT_MODEL, find_model, model_filename
from echoscribe.exceptions import ConfigError, FilesystemError
from echoscribe.utils import sanitize_non_empty

logger = logging.getLogger(__name__)

APP_NAME = "EchoScribe"
TRANSCRIPT_FOLDER_NAME = "EchoScribe Transcripts"
TRANSCRIPT_FORMAT = "md"

DIARIZATION_NONE = "none"
DIARIZATION_TWO_SPEAKER = "tdrz_2speaker"


def validate_diarization_mode(mode: str | None) -> str:
    """Map any unrecognized diarization mode to "none"."""
    if mode == DIARIZATION_TWO_SPEAKER:
        return DIARIZATION_TWO_SPEAKER
    return DIARIZATION_NONE


class AppPaths:
    """Locations of the application's data, models and scratch files."""

    def __init__(self, data_dir: Path, scratch_dir: Path | None = None) -> None:
        self.data_dir = data_dir
        self.models_dir = data_dir / "models"
        self.settings_path = data_dir / "settings.json"
        self.scratch_dir = scratch_dir or Path(tempfile.gettempdir()) / "echo-scribe"

    @classmethod
    def default(cls) -> AppPaths:
        """Resolve the per-user data directory, honouring ECHOSCRIBE_HOME."""
        override = sanitize_non_empty(os.environ.get("ECHOSCRIBE_HOME"))
        if override:
            return cls(Path(override).expanduser())
        return cls(Path(platformdirs.user_data_dir(APP_NAME, appauthor=False)))

    def model_path(self, model_id: str) -> Path:
        return self.models_dir / model_filename(model_id)


class AppSettings(BaseModel):
    """User settings persisted to settings.json."""

    model_config = ConfigDict(validate_assignment=True)

    selected_model: str = DEFAULT_MODEL
    transcript_dir: str | None = None
    transcript_format: str = TRANSCRIPT_FORMAT
    coachnotes_enabled: bool = False
    coachnotes_root_dir: str | None = None
    coachnotes_client: str | None = None
    diarization_mode: str = DIARIZATION_NONE

    @field_validator("selected_model")
    @classmethod
    def validate_selected_model(cls, v: str) -> str:
        if find_model(v) is None:
            logger.debug("Unknown selected model %r, using %s", v, DEFAULT_MODEL)
            return DEFAULT_MODEL
        return v

    @field_validator("transcript_format")
    @classmethod
    def validate_transcript_format(cls, v: str) -> str:
        return TRANSCRIPT_FORMAT

    @field_validator("diarization_mode")
    @classmethod
    def validate_diarization(cls, v: str) -> str:
        return validate_diarization_mode(v)

    @field_validator("transcript_dir", "coachnotes_root_dir", "coachnotes_client")
    @classmethod
    def validate_optional_text(cls, v: str | None) -> str | None:
        return sanitize_non_empty(v)


def load_settings(paths: AppPaths) -> AppSettings:
    """Load settings from disk, returning defaults when no file exists.

    Raises:
        ConfigError: If the file cannot be read or is not valid settings JSON
    """
    path = paths.settings_path
    if not path.exists():
        return AppSettings()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read settings file ({path}): {e}") from e

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid settings JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ConfigError("Invalid settings JSON: expected an object")

    try:
        return AppSettings(**payload)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e


def save_settings(paths: AppPaths, settings: AppSettings) -> None:
    """Write settings to disk as pretty-printed JSON."""
    try:
        paths.data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError("Failed to create app data directory", paths.data_dir, e) from e

    try:
        paths.settings_path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
    except OSError as e:
        raise FilesystemError("Failed to write settings file", paths.settings_path, e) from e


def update_settings(paths: AppPaths, **changes: Any) -> AppSettings:
    """Read settings fresh, apply changes, and write them back."""
    settings = load_settings(paths)
    for key, value in changes.items():
        if key not in AppSettings.model_fields:
            raise ConfigError(f"Unknown configuration key: {key}")
        setattr(settings, key, value)
    save_settings(paths, settings)
    return settings


def default_transcript_dir() -> Path:
    """Platform documents folder (or home) plus the application folder name."""
    documents = platformdirs.user_documents_dir()
    base = Path(documents) if documents else Path.home()
    return base / TRANSCRIPT_FOLDER_NAME


def resolve_transcript_dir(settings: AppSettings) -> Path:
    """Return the user's transcript directory override, or the default."""
    if settings.transcript_dir:
        return Path(settings.transcript_dir)
    return default_transcript_dir()
