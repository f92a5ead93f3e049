"""
echoscribe.progress - Progress events and observers.

The download manager and the transcription pipeline report progress through
a plain callable so they stay independent of how (or whether) progress is
displayed.
"""

from __future__ import annotations

import logging
from typing import Callable, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """Checkpoint reached by the transcription pipeline ("progress")."""

    percent: int
    message: str


class DownloadProgress(BaseModel):
    """Model download progress ("model-download-progress")."""

    model_id: str
    percent: int
    bytes_downloaded: int
    total_bytes: int | None = None
    message: str


AnyProgress = Union[ProgressEvent, DownloadProgress]
ProgressCallback = Callable[[AnyProgress], None]


def emit(callback: ProgressCallback | None, event: AnyProgress) -> None:
    """Deliver an event to callback, if one is attached."""
    if callback is not None:
        callback(event)


class LogProgress:
    """Observer that reports progress through logging.

    Used when a caller attaches no observer of its own, so runs without a UI
    still leave a trace with ``--verbose`` or a log file.
    """

    def __call__(self, event: AnyProgress) -> None:
        if isinstance(event, DownloadProgress):
            logger.info("[%s] %s %d%%", event.model_id, event.message, event.percent)
        else:
            logger.info("%s %d%%", event.message, event.percent)
