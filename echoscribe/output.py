"""
echoscribe.output - Transcript destinations and markdown export.

Decides where a transcript is saved (a CoachNotes client folder or the
standard transcript folder) and renders the markdown document with a YAML
front matter header.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

from echoscribe.config import AppSettings, resolve_transcript_dir
from echoscribe.exceptions import FilesystemError
from echoscribe.utils import sanitize_non_empty

logger = logging.getLogger(__name__)

OUTPUT_STANDARD = "standard"
OUTPUT_COACHNOTES = "coachnotes"
DELETED_NOTES_DIR = "Deleted Notes"
SOURCE_APP = "Echo Scribe"
DOCUMENT_TITLE = "Session Transcript"

WAV_HEADER_BYTES = 44
SAMPLE_RATE = 16_000
BYTES_PER_SAMPLE = 2

COACHNOTES_INCOMPLETE_WARNING = (
    "CoachNotes mode is enabled but root/client is incomplete. "
    "Saving to standard transcript folder instead."
)
COACHNOTES_UNAVAILABLE_WARNING = (
    "CoachNotes client folder could not be created. "
    "Saving to standard transcript folder instead."
)


def validate_output_mode(mode: str | None) -> str:
    if mode == OUTPUT_COACHNOTES:
        return OUTPUT_COACHNOTES
    return OUTPUT_STANDARD


def now_local() -> datetime:
    """Current time with the local UTC offset attached."""
    return datetime.now().astimezone()


class Destination(BaseModel):
    """Resolved save location plus any warnings raised while resolving it."""

    path: Path | None = None
    warnings: list[str] = []


def resolve_destination(
    settings: AppSettings,
    persist: bool,
    output_mode: str | None,
    client: str | None,
    run_timestamp: int,
    now: datetime | None = None,
) -> Destination:
    """Choose where to save a transcript.

    A CoachNotes destination is used only when requested, enabled, and both a
    root and a client (request client first, then the saved default) are
    known and the client folder can be created. Anything short of that falls
    back to the standard transcript folder with a warning; the fallback
    itself never depends on CoachNotes settings.

    Raises:
        FilesystemError: If the standard transcript directory cannot be created
    """
    if not persist:
        return Destination()

    now = now or now_local()
    warnings: list[str] = []

    if validate_output_mode(output_mode) == OUTPUT_COACHNOTES and settings.coachnotes_enabled:
        root = sanitize_non_empty(settings.coachnotes_root_dir)
        selected_client = sanitize_non_empty(client) or sanitize_non_empty(
            settings.coachnotes_client
        )
        if root and selected_client:
            client_dir = Path(root) / selected_client
            try:
                _ensure_dir(client_dir, "Failed to create CoachNotes client directory")
            except FilesystemError as e:
                logger.warning("CoachNotes destination unavailable: %s", e)
                warnings.append(COACHNOTES_UNAVAILABLE_WARNING)
            else:
                filename = f"{now:%Y-%m-%d}-transcript-{now:%H%M%S}.md"
                return Destination(path=client_dir / filename)
        else:
            logger.warning(
                "CoachNotes destination incomplete (root=%r, client=%r)", root, selected_client
            )
            warnings.append(COACHNOTES_INCOMPLETE_WARNING)

    transcript_dir = resolve_transcript_dir(settings)
    _ensure_dir(transcript_dir, "Failed to create transcript directory")
    return Destination(path=transcript_dir / f"transcript-{run_timestamp}.md", warnings=warnings)


def list_clients(root_dir: Path) -> list[str]:
    """List CoachNotes client folders under root_dir.

    Hidden folders and the "Deleted Notes" folder are skipped; names are
    sorted case-insensitively.

    Raises:
        FilesystemError: If root_dir does not exist or cannot be read
    """
    if not root_dir.exists():
        raise FilesystemError("CoachNotes root does not exist", root_dir)

    try:
        entries = list(root_dir.iterdir())
    except OSError as e:
        raise FilesystemError("Failed to read", root_dir, e) from e

    clients = [
        entry.name
        for entry in entries
        if entry.is_dir() and not entry.name.startswith(".") and entry.name != DELETED_NOTES_DIR
    ]
    return sorted(clients, key=str.lower)


def estimate_duration_seconds(audio: bytes) -> int:
    """Approximate duration of 16 kHz 16-bit mono WAV data, in whole seconds."""
    if len(audio) <= WAV_HEADER_BYTES:
        return 0
    samples = (len(audio) - WAV_HEADER_BYTES) // BYTES_PER_SAMPLE
    return samples // SAMPLE_RATE


class _Quoted(str):
    """String rendered double-quoted in the front matter."""


class _FrontMatterDumper(yaml.SafeDumper):
    pass


def _represent_quoted(dumper: yaml.SafeDumper, data: _Quoted) -> Any:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


_FrontMatterDumper.add_representer(_Quoted, _represent_quoted)


def build_front_matter(fields: dict[str, Any]) -> str:
    """Render fields as YAML, double-quoting every string value."""
    quoted = {key: _Quoted(value) if isinstance(value, str) else value for key, value in fields.items()}
    return yaml.dump(
        quoted,
        Dumper=_FrontMatterDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=1_000_000,
    )


def build_markdown_transcript(
    transcript: str,
    client: str | None,
    model: str,
    language: str,
    diarization_mode: str,
    duration_seconds: int,
    now: datetime | None = None,
) -> str:
    """Render the persisted markdown document."""
    now = now or now_local()
    header = build_front_matter(
        {
            "title": DOCUMENT_TITLE,
            "date": f"{now:%Y-%m-%d}",
            "client": client or "",
            "source_app": SOURCE_APP,
            "created_at": now.isoformat(timespec="seconds"),
            "model": model,
            "language": language,
            "diarization_mode": diarization_mode,
            "duration_seconds": duration_seconds,
        }
    )
    return f"---\n{header}---\n# Transcript\n\n{transcript}\n"


def write_transcript(path: Path, content: str) -> None:
    """Write the transcript document."""
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise FilesystemError("Failed to write transcript file", path, e) from e


def _ensure_dir(path: Path, action: str) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(action, path, e) from e
