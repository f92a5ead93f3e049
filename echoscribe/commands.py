"""
echoscribe.commands - Operations exposed to the presentation layer.

Every command reads settings fresh from disk, so callers hold no state
between calls.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel

from echoscribe.catalog import MODEL_CATALOG, validate_model
from echoscribe.config import (
    TRANSCRIPT_FORMAT,
    AppPaths,
    load_settings,
    resolve_transcript_dir,
    update_settings,
)
from echoscribe.download import ModelDownloader
from echoscribe.engine import BundledLocator, EngineInvoker, locator_for_build
from echoscribe.exceptions import FilesystemError, InvalidInputError
from echoscribe.output import estimate_duration_seconds, list_clients
from echoscribe.progress import ProgressCallback
from echoscribe.reveal import reveal_in_file_manager
from echoscribe.transcribe import Transcriber, TranscriptionRequest, TranscriptionResult
from echoscribe.utils import sanitize_non_empty

logger = logging.getLogger(__name__)

__all__ = [
    "ModelState",
    "SetupState",
    "DownloadResult",
    "get_setup_state",
    "set_selected_model",
    "set_transcript_directory",
    "get_secondary_clients",
    "set_secondary_output_settings",
    "download_model",
    "transcribe",
    "reveal_in_file_manager",
    "estimate_duration_seconds",
]


class ModelState(BaseModel):
    id: str
    label: str
    size_mb: int
    downloaded: bool
    path: str


class DiarizationCapabilities(BaseModel):
    tdrz_english_only: bool = True


class SetupState(BaseModel):
    """Aggregate view of configuration and readiness."""

    selected_model: str
    transcript_dir: str
    transcript_format: str = TRANSCRIPT_FORMAT
    models_dir: str
    models: list[ModelState]
    ready: bool
    bundled_ready: bool
    coachnotes_enabled: bool
    coachnotes_root_dir: str | None = None
    coachnotes_clients: list[str] = []
    coachnotes_client: str | None = None
    diarization_mode: str
    diarization_capabilities: DiarizationCapabilities = DiarizationCapabilities()


class DownloadResult(BaseModel):
    model_id: str
    local_path: str


def get_setup_state(paths: AppPaths, locator: BundledLocator | None = None) -> SetupState:
    """Build the setup view; ready means the selected model is downloaded and
    the engine can run under the current build policy."""
    settings = load_settings(paths)
    locator = locator or locator_for_build()

    models = []
    for entry in MODEL_CATALOG:
        path = entry.local_path(paths.models_dir)
        models.append(
            ModelState(
                id=entry.id,
                label=entry.label,
                size_mb=entry.size_mb,
                downloaded=path.exists(),
                path=str(path),
            )
        )

    selected_downloaded = any(m.downloaded for m in models if m.id == settings.selected_model)

    clients: list[str] = []
    if settings.coachnotes_root_dir:
        try:
            clients = list_clients(Path(settings.coachnotes_root_dir))
        except FilesystemError as e:
            logger.debug("Cannot list CoachNotes clients: %s", e)

    return SetupState(
        selected_model=settings.selected_model,
        transcript_dir=str(resolve_transcript_dir(settings)),
        models_dir=str(paths.models_dir),
        models=models,
        ready=selected_downloaded and locator.runtime_ready(),
        bundled_ready=locator.bundled_available(),
        coachnotes_enabled=settings.coachnotes_enabled,
        coachnotes_root_dir=settings.coachnotes_root_dir,
        coachnotes_clients=clients,
        coachnotes_client=settings.coachnotes_client,
        diarization_mode=settings.diarization_mode,
    )


def set_selected_model(
    paths: AppPaths, model_id: str, locator: BundledLocator | None = None
) -> SetupState:
    validate_model(model_id)
    update_settings(paths, selected_model=model_id)
    return get_setup_state(paths, locator)


def set_transcript_directory(
    paths: AppPaths, directory: str, locator: BundledLocator | None = None
) -> SetupState:
    """Point transcripts at directory, creating it if missing."""
    cleaned = sanitize_non_empty(directory)
    if cleaned is None:
        raise InvalidInputError("Directory path cannot be empty.")

    directory_path = Path(cleaned).expanduser()
    try:
        directory_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError("Could not create transcript directory", directory_path, e) from e

    update_settings(paths, transcript_dir=str(directory_path))
    return get_setup_state(paths, locator)


def get_secondary_clients(root_dir: str) -> list[str]:
    """List client folders under a CoachNotes root; a blank root has none."""
    cleaned = sanitize_non_empty(root_dir)
    if cleaned is None:
        return []
    return list_clients(Path(cleaned).expanduser())


def set_secondary_output_settings(
    paths: AppPaths,
    enabled: bool,
    root_dir: str | None = None,
    client: str | None = None,
    locator: BundledLocator | None = None,
) -> SetupState:
    """Save CoachNotes settings, creating the root folder if given."""
    root = sanitize_non_empty(root_dir)
    if root is not None:
        root_path = Path(root).expanduser()
        try:
            root_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("Failed to ensure CoachNotes root exists", root_path, e) from e
        root = str(root_path)

    update_settings(
        paths,
        coachnotes_enabled=enabled,
        coachnotes_root_dir=root,
        coachnotes_client=sanitize_non_empty(client),
    )
    return get_setup_state(paths, locator)


def download_model(
    paths: AppPaths,
    model_id: str,
    on_progress: ProgressCallback | None = None,
    downloader: ModelDownloader | None = None,
) -> DownloadResult:
    downloader = downloader or ModelDownloader(paths.models_dir)
    path = downloader.ensure(model_id, on_progress)
    return DownloadResult(model_id=model_id, local_path=str(path))


def transcribe(
    paths: AppPaths,
    request: TranscriptionRequest,
    on_progress: ProgressCallback | None = None,
    invoker: EngineInvoker | None = None,
) -> TranscriptionResult:
    return Transcriber(paths, invoker).transcribe(request, on_progress)
