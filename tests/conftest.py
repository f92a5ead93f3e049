"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import hashlib
import logging
import subprocess
from pathlib import Path

import pytest

from echoscribe import catalog, config
from echoscribe.config import AppPaths
from echoscribe.engine import BundledLocator, EngineInvoker
from echoscribe.progress import AnyProgress


def fake_model_bytes(model_id: str) -> bytes:
    """Deterministic stand-in for a model file."""
    return f"ggml weights for {model_id}\n".encode() * 5000


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep tests away from the real home, documents folder and build profile."""
    documents = tmp_path / "Documents" / config.TRANSCRIPT_FOLDER_NAME
    monkeypatch.setattr(config, "default_transcript_dir", lambda: documents)
    monkeypatch.setenv("ECHOSCRIBE_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("ECHOSCRIBE_BUILD", raising=False)
    return documents


@pytest.fixture
def app_paths(tmp_path: Path) -> AppPaths:
    return AppPaths(tmp_path / "data", scratch_dir=tmp_path / "scratch")


@pytest.fixture
def fake_catalog(monkeypatch: pytest.MonkeyPatch) -> dict[str, bytes]:
    """Replace catalog digests with digests of fake_model_bytes()."""
    payloads = {}
    entries = []
    for entry in catalog.MODEL_CATALOG:
        payload = fake_model_bytes(entry.id)
        payloads[entry.id] = payload
        entries.append(entry.model_copy(update={"sha256": hashlib.sha256(payload).hexdigest()}))
    monkeypatch.setattr(catalog, "MODEL_CATALOG", tuple(entries))
    return payloads


@pytest.fixture
def installed_model(app_paths: AppPaths):
    """Create a model file so the pipeline considers it downloaded."""

    def install(model_id: str = "base") -> Path:
        path = app_paths.model_path(model_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"model")
        return path

    return install


class FakeWhisper:
    """Stands in for subprocess.run, writing whisper.cpp style .txt output."""

    def __init__(self, output: str | None = "Hello there.\n", returncode: int = 0, stderr: bytes = b""):
        self.output = output
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[list[str]] = []

    def __call__(self, cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        self.calls.append(cmd)
        self.audio_existed = Path(cmd[cmd.index("-f") + 1]).exists()
        if self.output is not None and self.returncode == 0:
            base = Path(cmd[cmd.index("-of") + 1])
            base.with_name(base.name + ".txt").write_text(self.output, encoding="utf-8")
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=b"", stderr=self.stderr)

    @property
    def args(self) -> list[str]:
        return self.calls[-1][1:]


@pytest.fixture
def bundled_bin(tmp_path: Path) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    binary = bin_dir / "whisper-cli"
    binary.write_text("#!/bin/sh\n")
    return bin_dir


@pytest.fixture
def fake_whisper() -> FakeWhisper:
    return FakeWhisper()


@pytest.fixture
def invoker(bundled_bin: Path, fake_whisper: FakeWhisper) -> EngineInvoker:
    return EngineInvoker(BundledLocator(bundled_bin), runner=fake_whisper)


@pytest.fixture
def wav_bytes() -> bytes:
    """44-byte header plus two seconds of 16 kHz 16-bit silence."""
    return b"RIFF" + b"\x00" * 40 + b"\x00\x00" * 32000


class RecordingProgress:
    """Progress observer that keeps every event it receives, in order."""

    def __init__(self) -> None:
        self.events: list[AnyProgress] = []

    def __call__(self, event: AnyProgress) -> None:
        self.events.append(event)

    @property
    def percents(self) -> list[int]:
        return [event.percent for event in self.events]


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def echoscribe_caplog(caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch):
    """caplog that also sees echoscribe records after configure_logging() has run."""
    monkeypatch.setattr(logging.getLogger("echoscribe"), "propagate", True)
    caplog.set_level(logging.INFO, logger="echoscribe")
    return caplog
