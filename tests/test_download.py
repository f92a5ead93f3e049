"""Tests for echoscribe.download module."""

from __future__ import annotations

import hashlib
import threading
import time
from pathlib import Path

import httpx
import pytest

from echoscribe import catalog
from echoscribe.download import ModelDownloader, _InFlight, download_percent, sha256_for_file
from echoscribe.exceptions import ChecksumMismatchError, DownloadError, UnknownModelError
from echoscribe.progress import DownloadProgress


def make_client(payloads: dict[str, bytes], requests: list[str], status: int = 200) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        model_file = request.url.path.rsplit("/", 1)[-1]
        model_id = model_file.removeprefix("ggml-").removesuffix(".bin")
        return httpx.Response(status, content=payloads.get(model_id, b""))

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestSha256ForFile:
    def test_matches_hashlib(self, tmp_path: Path) -> None:
        path = tmp_path / "blob.bin"
        data = b"x" * 200_000
        path.write_bytes(data)
        assert sha256_for_file(path, chunk_size=4096) == hashlib.sha256(data).hexdigest()

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")
        assert sha256_for_file(path) == hashlib.sha256(b"").hexdigest()


class TestDownloadPercent:
    def test_unknown_total_is_placeholder(self) -> None:
        assert download_percent(10_000, None) == 2

    def test_clamped_low(self) -> None:
        assert download_percent(1, 1000) == 2

    def test_clamped_high(self) -> None:
        assert download_percent(1000, 1000) == 99

    def test_midway(self) -> None:
        assert download_percent(500, 1000) == 50


class TestEnsure:
    def test_unknown_model_raises(self, tmp_path: Path) -> None:
        downloader = ModelDownloader(tmp_path, client=make_client({}, []))
        with pytest.raises(UnknownModelError):
            downloader.ensure("gigantic")

    @pytest.mark.parametrize("model_id", catalog.model_ids())
    def test_verified_existing_file_skips_network(
        self, tmp_path: Path, fake_catalog: dict[str, bytes], model_id: str, progress
    ) -> None:
        requests: list[str] = []
        target = tmp_path / f"ggml-{model_id}.bin"
        target.write_bytes(fake_catalog[model_id])

        downloader = ModelDownloader(tmp_path, client=make_client(fake_catalog, requests))
        path = downloader.ensure(model_id, progress)

        assert path == target
        assert requests == []
        assert progress.percents[-1] == 100
        assert progress.events[-1].message == "Model already downloaded."

    @pytest.mark.parametrize("model_id", catalog.model_ids())
    def test_corrupt_existing_file_is_replaced(
        self, tmp_path: Path, fake_catalog: dict[str, bytes], model_id: str
    ) -> None:
        requests: list[str] = []
        target = tmp_path / f"ggml-{model_id}.bin"
        target.write_bytes(b"truncated")

        downloader = ModelDownloader(tmp_path, client=make_client(fake_catalog, requests))
        path = downloader.ensure(model_id)

        assert len(requests) == 1
        assert path.read_bytes() == fake_catalog[model_id]
        assert not (tmp_path / f"ggml-{model_id}.bin.part").exists()

    def test_fresh_download_reports_progress(
        self, tmp_path: Path, fake_catalog: dict[str, bytes], progress
    ) -> None:
        downloader = ModelDownloader(
            tmp_path, client=make_client(fake_catalog, []), chunk_size=8192
        )

        path = downloader.ensure("tiny", progress)

        assert path.read_bytes() == fake_catalog["tiny"]
        percents = progress.percents
        assert percents[0] == 2
        assert percents[-1] == 100
        in_flight = percents[1:-1]
        assert in_flight
        assert all(2 <= p <= 99 for p in in_flight)
        assert in_flight == sorted(in_flight)
        final = progress.events[-1]
        assert final.bytes_downloaded == len(fake_catalog["tiny"])
        assert final.total_bytes == len(fake_catalog["tiny"])
        assert {event.model_id for event in progress.events} == {"tiny"}

    def test_unknown_content_length_uses_placeholder(
        self, tmp_path: Path, fake_catalog: dict[str, bytes], progress
    ) -> None:
        payload = fake_catalog["base"]

        def handler(request: httpx.Request) -> httpx.Response:
            chunks = [payload[i : i + 10_000] for i in range(0, len(payload), 10_000)]
            return httpx.Response(200, content=iter(chunks))

        client = httpx.Client(transport=httpx.MockTransport(handler))
        ModelDownloader(tmp_path, client=client).ensure("base", progress)

        in_flight = [e for e in progress.events if e.message == "Downloading model..."]
        assert in_flight
        assert all(e.percent == 2 and e.total_bytes is None for e in in_flight)
        assert progress.percents[-1] == 100

    def test_checksum_mismatch_leaves_no_target(
        self, tmp_path: Path, fake_catalog: dict[str, bytes]
    ) -> None:
        tampered = dict(fake_catalog, small=b"not the real weights")
        downloader = ModelDownloader(tmp_path, client=make_client(tampered, []))

        with pytest.raises(ChecksumMismatchError) as exc_info:
            downloader.ensure("small")

        assert exc_info.value.expected == catalog.find_model("small").sha256
        assert exc_info.value.actual == hashlib.sha256(b"not the real weights").hexdigest()
        assert not (tmp_path / "ggml-small.bin").exists()
        assert not (tmp_path / "ggml-small.bin.part").exists()

    def test_checksum_mismatch_after_corrupt_file(
        self, tmp_path: Path, fake_catalog: dict[str, bytes]
    ) -> None:
        (tmp_path / "ggml-small.bin").write_bytes(b"stale")
        tampered = dict(fake_catalog, small=b"still wrong")
        downloader = ModelDownloader(tmp_path, client=make_client(tampered, []))

        with pytest.raises(ChecksumMismatchError):
            downloader.ensure("small")

        assert not (tmp_path / "ggml-small.bin").exists()

    def test_http_error_status(self, tmp_path: Path, fake_catalog: dict[str, bytes]) -> None:
        downloader = ModelDownloader(tmp_path, client=make_client(fake_catalog, [], status=404))

        with pytest.raises(DownloadError, match="404"):
            downloader.ensure("tiny")

        assert not (tmp_path / "ggml-tiny.bin").exists()
        assert not (tmp_path / "ggml-tiny.bin.part").exists()

    def test_transport_error(self, tmp_path: Path, fake_catalog: dict[str, bytes]) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(DownloadError, match="connection refused"):
            ModelDownloader(tmp_path, client=client).ensure("tiny")

    def test_leftover_partial_file_is_discarded(
        self, tmp_path: Path, fake_catalog: dict[str, bytes]
    ) -> None:
        (tmp_path / "ggml-tiny.bin.part").write_bytes(b"half a download")
        downloader = ModelDownloader(tmp_path, client=make_client(fake_catalog, []))

        path = downloader.ensure("tiny")

        assert path.read_bytes() == fake_catalog["tiny"]
        assert not (tmp_path / "ggml-tiny.bin.part").exists()

    def test_creates_models_directory(self, tmp_path: Path, fake_catalog: dict[str, bytes]) -> None:
        models_dir = tmp_path / "nested" / "models"
        ModelDownloader(models_dir, client=make_client(fake_catalog, [])).ensure("tiny")
        assert (models_dir / "ggml-tiny.bin").exists()

    def test_logs_progress_without_observer(
        self, tmp_path: Path, fake_catalog: dict[str, bytes], echoscribe_caplog
    ) -> None:
        ModelDownloader(tmp_path, client=make_client(fake_catalog, [])).ensure("tiny")
        assert "[tiny] Model download complete. 100%" in echoscribe_caplog.messages

    def test_failing_observer_does_not_abort_download(
        self, tmp_path: Path, fake_catalog: dict[str, bytes]
    ) -> None:
        def broken(event) -> None:
            raise RuntimeError("display closed")

        downloader = ModelDownloader(tmp_path, client=make_client(fake_catalog, []))
        path = downloader.ensure("tiny", broken)

        assert path.read_bytes() == fake_catalog["tiny"]
        assert not (tmp_path / "ggml-tiny.bin.part").exists()

    def test_failing_listener_does_not_starve_others(self, progress) -> None:
        def broken(event) -> None:
            raise RuntimeError("display closed")

        in_flight = _InFlight()
        in_flight.add_listener(broken)
        in_flight.add_listener(progress)
        in_flight.broadcast(
            DownloadProgress(
                model_id="tiny", percent=50, bytes_downloaded=5, message="Downloading model..."
            )
        )

        assert progress.percents == [50]


class TestConcurrentEnsure:
    def test_second_request_joins_first(
        self, tmp_path: Path, fake_catalog: dict[str, bytes], progress
    ) -> None:
        started = threading.Event()
        release = threading.Event()
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            started.set()
            release.wait(timeout=5)
            return httpx.Response(200, content=fake_catalog["tiny"])

        client = httpx.Client(transport=httpx.MockTransport(handler))
        downloader = ModelDownloader(tmp_path, client=client)
        results: list[Path] = []

        first = threading.Thread(target=lambda: results.append(downloader.ensure("tiny")))
        first.start()
        assert started.wait(timeout=5)

        second = threading.Thread(
            target=lambda: results.append(downloader.ensure("tiny", progress))
        )
        second.start()
        target = tmp_path / "ggml-tiny.bin"
        deadline = time.monotonic() + 5
        in_flight = ModelDownloader._registry[target]
        while progress not in in_flight.listeners and time.monotonic() < deadline:
            time.sleep(0.01)
        release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert len(requests) == 1
        assert results == [tmp_path / "ggml-tiny.bin"] * 2
        assert progress.percents[-1] == 100
