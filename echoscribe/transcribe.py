"""
echoscribe.transcribe - The transcription pipeline.

validate request → write scratch WAV → run whisper.cpp → read text output →
normalize / label speakers → resolve destination → write markdown.

Non-fatal problems (diarization downgraded, CoachNotes destination
incomplete, development engine fallback) are returned as warnings on the
result; everything else raises an EchoScribeError.
"""

from __future__ import annotations

import contextlib
import logging
import time
import uuid
from pathlib import Path

from pydantic import BaseModel, field_validator

from echoscribe.catalog import DIARIZATION_LANGUAGE, DIARIZATION_MODEL, validate_model
from echoscribe.config import (
    DIARIZATION_NONE,
    DIARIZATION_TWO_SPEAKER,
    TRANSCRIPT_FORMAT,
    AppPaths,
    load_settings,
    validate_diarization_mode,
)
from echoscribe.engine import EngineInvoker, build_engine_args
from echoscribe.exceptions import (
    EmptyTranscriptError,
    EngineExecutionError,
    EngineOutputMissingError,
    FilesystemError,
    InvalidInputError,
    ModelNotDownloadedError,
)
from echoscribe.output import (
    build_markdown_transcript,
    estimate_duration_seconds,
    resolve_destination,
    write_transcript,
)
from echoscribe.postprocess import apply_speaker_labels, normalize_transcript
from echoscribe.progress import LogProgress, ProgressCallback, ProgressEvent, emit
from echoscribe.utils import sanitize_non_empty

logger = logging.getLogger(__name__)

ENGLISH_ONLY_WARNING = "2-speaker mode is English-only. Falling back to standard transcription."
MODEL_REQUIRED_WARNING = (
    f"2-speaker mode requires the {DIARIZATION_MODEL} model. "
    "Falling back to standard transcription."
)
FALLBACK_BINARY_WARNING = (
    "Using local whisper binary fallback in development mode. "
    "Release builds use the bundled binary."
)
NO_SPEAKER_TURNS_WARNING = (
    "2-speaker mode did not produce speaker boundaries. Output is unsegmented."
)


class TranscriptionRequest(BaseModel):
    """Input to one pipeline run."""

    audio: bytes
    model: str
    language: str = "auto"
    persist: bool = True
    output_mode: str = "standard"
    client: str | None = None
    diarization_mode: str | None = None

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        return v.strip() or "auto"


class TranscriptionResult(BaseModel):
    """Outcome of one pipeline run."""

    transcript: str
    saved_path: Path | None = None
    format: str = TRANSCRIPT_FORMAT
    diarization_applied: bool = False
    warnings: list[str] = []


def resolve_diarization_mode(
    requested: str | None,
    saved: str,
    language: str,
    model: str,
) -> tuple[str, list[str]]:
    """Decide the effective diarization mode for a run.

    An unset or "none" request uses the saved setting. Two-speaker mode is
    only kept for English with the tinydiarize model; otherwise it is
    downgraded with a single warning.
    """
    mode = validate_diarization_mode(requested)
    if mode == DIARIZATION_NONE:
        mode = validate_diarization_mode(saved)

    if mode != DIARIZATION_TWO_SPEAKER:
        return mode, []
    if language != DIARIZATION_LANGUAGE:
        return DIARIZATION_NONE, [ENGLISH_ONLY_WARNING]
    if model != DIARIZATION_MODEL:
        return DIARIZATION_NONE, [MODEL_REQUIRED_WARNING]
    return mode, []


class Transcriber:
    """Runs the transcription pipeline against one application directory."""

    def __init__(self, paths: AppPaths, invoker: EngineInvoker | None = None) -> None:
        self.paths = paths
        self.invoker = invoker or EngineInvoker()

    def transcribe(
        self,
        request: TranscriptionRequest,
        on_progress: ProgressCallback | None = None,
    ) -> TranscriptionResult:
        """Transcribe recorded audio and optionally save it as markdown.

        Args:
            request: Audio and options for this run
            on_progress: Observer for checkpoint events; progress is logged when omitted

        Returns:
            TranscriptionResult with transcript, saved path and warnings

        Raises:
            InvalidInputError: If no audio was supplied
            UnknownModelError: If the model id is not in the catalog
            ModelNotDownloadedError: If the model file is missing
            EngineUnavailableError: If whisper-cli cannot be launched
            EngineExecutionError: If whisper-cli exits unsuccessfully
            EngineOutputMissingError: If whisper-cli wrote no transcript
            EmptyTranscriptError: If the transcript is empty
            FilesystemError: If scratch or transcript files cannot be written
        """
        if not request.audio:
            raise InvalidInputError("No audio data provided. Record audio first.")
        if on_progress is None:
            on_progress = LogProgress()

        validate_model(request.model)
        model_path = self.paths.model_path(request.model)
        if not model_path.exists():
            raise ModelNotDownloadedError(request.model)

        settings = load_settings(self.paths)
        diarization_mode, warnings = resolve_diarization_mode(
            request.diarization_mode,
            settings.diarization_mode,
            request.language,
            request.model,
        )
        diarize = diarization_mode == DIARIZATION_TWO_SPEAKER

        timestamp = int(time.time())
        scratch_dir = self.paths.scratch_dir
        try:
            scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("Failed to create temporary directory", scratch_dir, e) from e

        stem = f"recording-{timestamp}-{uuid.uuid4().hex[:8]}"
        wav_path = scratch_dir / f"{stem}.wav"
        output_base = scratch_dir / stem
        txt_path = scratch_dir / f"{stem}.txt"

        try:
            emit(on_progress, ProgressEvent(percent=5, message="Preparing recording..."))
            try:
                wav_path.write_bytes(request.audio)
            except OSError as e:
                raise FilesystemError("Failed to write temporary audio file", wav_path, e) from e

            emit(
                on_progress,
                ProgressEvent(percent=20, message=f"Transcribing with {request.model} model..."),
            )
            args = build_engine_args(model_path, wav_path, output_base, request.language, diarize)
            output = self.invoker.run(args)
            if not output.used_bundled:
                warnings.append(FALLBACK_BINARY_WARNING)
            if not output.succeeded:
                raise EngineExecutionError(output.stderr_text)

            emit(on_progress, ProgressEvent(percent=85, message="Reading transcript..."))
            try:
                raw = txt_path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                raise EngineOutputMissingError(txt_path, e) from e

            if diarize:
                transcript, diarization_applied = apply_speaker_labels(raw)
                if not diarization_applied:
                    warnings.append(NO_SPEAKER_TURNS_WARNING)
            else:
                transcript, diarization_applied = normalize_transcript(raw), False

            if not transcript:
                raise EmptyTranscriptError()

            destination = resolve_destination(
                settings,
                request.persist,
                request.output_mode,
                request.client,
                timestamp,
            )
            warnings.extend(destination.warnings)

            if destination.path is not None:
                document = build_markdown_transcript(
                    transcript,
                    client=sanitize_non_empty(request.client)
                    or sanitize_non_empty(settings.coachnotes_client),
                    model=request.model,
                    language=request.language,
                    diarization_mode=diarization_mode,
                    duration_seconds=estimate_duration_seconds(request.audio),
                )
                write_transcript(destination.path, document)
                logger.info("Saved transcript to %s", destination.path)
        finally:
            for path in (wav_path, txt_path):
                with contextlib.suppress(OSError):
                    path.unlink(missing_ok=True)

        emit(on_progress, ProgressEvent(percent=100, message="Transcription complete!"))

        for warning in warnings:
            logger.warning(warning)

        return TranscriptionResult(
            transcript=transcript,
            saved_path=destination.path,
            diarization_applied=diarization_applied,
            warnings=warnings,
        )
