"""
echoscribe.exceptions - Custom exception classes.

All Echo Scribe exceptions inherit from EchoScribeError. The exception
class is the error kind; str(exc) is the user-facing message.
"""

from __future__ import annotations

from pathlib import Path


class EchoScribeError(Exception):
    """Base exception for all Echo Scribe errors."""

    pass


class ConfigError(EchoScribeError):
    """Settings loading or validation error."""

    pass


class InvalidInputError(EchoScribeError):
    """Rejected request input (empty audio, empty directory path)."""

    pass


class UnknownModelError(EchoScribeError):
    """Model id is not in the catalog."""

    def __init__(self, model_id: str, valid_ids: list[str]):
        self.model_id = model_id
        self.valid_ids = valid_ids
        super().__init__(f"Unsupported model '{model_id}'. Valid values: {', '.join(valid_ids)}")


class ModelNotDownloadedError(EchoScribeError):
    """Model is known but its artifact is not present locally."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(
            f"Model '{model_id}' is not downloaded yet. "
            f"Run 'echoscribe download {model_id}' first."
        )


class DownloadError(EchoScribeError):
    """Network failure or non-success HTTP status while fetching a model."""

    pass


class ChecksumMismatchError(EchoScribeError):
    """Downloaded artifact digest differs from the catalog digest."""

    def __init__(self, model_id: str, expected: str, actual: str):
        self.model_id = model_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {model_id} model. Expected {expected}, got {actual}."
        )


class EngineUnavailableError(EchoScribeError):
    """Recognition engine binary could not be located or launched."""

    pass


class EngineExecutionError(EchoScribeError):
    """Recognition engine exited unsuccessfully."""

    def __init__(self, stderr: str):
        self.stderr = stderr
        super().__init__(f"Whisper failed: {stderr}")


class EngineOutputMissingError(EchoScribeError):
    """Engine reported success but produced no transcript file."""

    def __init__(self, path: Path, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        message = f"Whisper ran but transcript file could not be read ({path})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class EmptyTranscriptError(EchoScribeError):
    """Post-processed transcript is empty."""

    def __init__(self) -> None:
        super().__init__("Whisper returned an empty transcript.")


class FilesystemError(EchoScribeError):
    """Filesystem operation failed on a specific path."""

    def __init__(self, action: str, path: Path | str, cause: Exception | None = None):
        self.action = action
        self.path = Path(path)
        self.cause = cause
        message = f"{action} ({path})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
