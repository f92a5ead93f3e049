"""
echoscribe.download - Resumable-safe model download with integrity checks.

Fetches a catalog entry's artifact into the models directory. A file is only
ever served from its canonical path after its SHA-256 digest has matched the
catalog: existing files are re-verified, and new downloads are streamed into
a ``.part`` file that is renamed into place only once verified.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable

import httpx

from echoscribe.catalog import ModelCatalogEntry, validate_model
from echoscribe.exceptions import ChecksumMismatchError, DownloadError, FilesystemError
from echoscribe.progress import DownloadProgress, LogProgress, ProgressCallback, emit

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = httpx.Timeout(30.0, read=120.0)


def sha256_for_file(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the SHA-256 hex digest of a file without buffering it whole."""
    sha256 = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                sha256.update(chunk)
    except OSError as e:
        raise FilesystemError("Failed to read", path, e) from e
    return sha256.hexdigest()


def download_percent(downloaded: int, total: int | None) -> int:
    """Percent for an in-flight download, clamped to [2, 99].

    0 and 100 are reserved for "not started" and "complete"; with an unknown
    total the percent stays at the low placeholder.
    """
    if not total:
        return 2
    return max(2, min(99, downloaded * 100 // total))


class _InFlight:
    """A download in progress, shared with callers that join it."""

    def __init__(self) -> None:
        self.future: Future[Path] = Future()
        self.listeners: list[ProgressCallback] = []
        self.lock = threading.Lock()

    def add_listener(self, callback: ProgressCallback | None) -> None:
        if callback is not None:
            with self.lock:
                self.listeners.append(callback)

    def broadcast(self, event: DownloadProgress) -> None:
        with self.lock:
            listeners = list(self.listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Progress listener failed for %s", event.model_id)


class ModelDownloader:
    """Ensures catalog models are present and verified in a models directory."""

    _registry: dict[Path, _InFlight] = {}
    _registry_lock = threading.Lock()

    def __init__(
        self,
        models_dir: Path,
        client: httpx.Client | None = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.models_dir = models_dir
        self.chunk_size = chunk_size
        self._client = client

    def ensure(self, model_id: str, on_progress: ProgressCallback | None = None) -> Path:
        """Return the local path of a verified model artifact, downloading it if needed.

        A second call for the same model while a download is running waits for
        that download and receives its remaining progress events.
        Progress is logged when the downloading caller attaches no observer.

        Raises:
            UnknownModelError: If model_id is not in the catalog
            DownloadError: On network failure or non-success HTTP status
            ChecksumMismatchError: If the downloaded digest is wrong
            FilesystemError: If the models directory cannot be written
        """
        entry = validate_model(model_id)
        target = entry.local_path(self.models_dir)

        with self._registry_lock:
            in_flight = self._registry.get(target)
            owner = in_flight is None
            if in_flight is None:
                in_flight = _InFlight()
                self._registry[target] = in_flight
            if owner and on_progress is None:
                on_progress = LogProgress()
            in_flight.add_listener(on_progress)

        if not owner:
            logger.info("Joining in-flight download of %s", entry.id)
            return in_flight.future.result()

        try:
            path = self._ensure(entry, target, in_flight.broadcast)
        except BaseException as e:
            in_flight.future.set_exception(e)
            raise
        else:
            in_flight.future.set_result(path)
            return path
        finally:
            with self._registry_lock:
                self._registry.pop(target, None)

    def _ensure(
        self, entry: ModelCatalogEntry, target: Path, on_progress: ProgressCallback
    ) -> Path:
        def report(percent: int, downloaded: int, total: int | None, message: str) -> None:
            emit(
                on_progress,
                DownloadProgress(
                    model_id=entry.id,
                    percent=percent,
                    bytes_downloaded=downloaded,
                    total_bytes=total,
                    message=message,
                ),
            )

        try:
            self.models_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError("Failed to create models directory", self.models_dir, e) from e

        temp_path = target.with_name(target.name + ".part")

        if target.exists():
            report(1, 0, None, "Verifying existing model...")
            existing = sha256_for_file(target, self.chunk_size)
            if existing == entry.sha256:
                report(100, 0, None, "Model already downloaded.")
                return target
            logger.warning(
                "Existing %s model failed verification (got %s), downloading again",
                entry.id,
                existing,
            )
            _remove(target)

        _remove(temp_path)
        report(2, 0, None, "Starting download...")

        try:
            downloaded, total, actual = self._stream_to(entry, temp_path, report)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        if actual != entry.sha256:
            temp_path.unlink(missing_ok=True)
            raise ChecksumMismatchError(entry.id, entry.sha256, actual)

        # Some platforms refuse to rename over an existing file.
        _remove(target)
        try:
            temp_path.rename(target)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise FilesystemError("Failed to finalize model file", target, e) from e

        logger.info("Downloaded %s model to %s (%d bytes)", entry.id, target, downloaded)
        report(100, downloaded, total, "Model download complete.")
        return target

    def _stream_to(
        self,
        entry: ModelCatalogEntry,
        temp_path: Path,
        report: Callable[[int, int, int | None, str], None],
    ) -> tuple[int, int | None, str]:
        """Stream the artifact into temp_path; return (bytes, total, hex digest)."""
        client = self._client or httpx.Client(follow_redirects=True, timeout=DEFAULT_TIMEOUT)
        try:
            with client.stream("GET", entry.url) as response:
                if not response.is_success:
                    raise DownloadError(
                        f"Model download failed with HTTP status {response.status_code}"
                    )
                total = _content_length(response)

                try:
                    f = open(temp_path, "wb")
                except OSError as e:
                    raise FilesystemError("Failed to create temp model file", temp_path, e) from e

                sha256 = hashlib.sha256()
                downloaded = 0
                with f:
                    for chunk in response.iter_bytes(self.chunk_size):
                        try:
                            f.write(chunk)
                        except OSError as e:
                            raise FilesystemError("Failed to write model file", temp_path, e) from e
                        sha256.update(chunk)
                        downloaded += len(chunk)
                        report(
                            download_percent(downloaded, total),
                            downloaded,
                            total,
                            "Downloading model...",
                        )
        except httpx.HTTPError as e:
            raise DownloadError(f"Model download failed: {e}") from e
        finally:
            if self._client is None:
                client.close()

        return downloaded, total, sha256.hexdigest()


def _content_length(response: httpx.Response) -> int | None:
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length > 0 else None


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise FilesystemError("Failed to remove", path, e) from e
