"""
echoscribe.engine - whisper.cpp engine invocation.

Runs the external ``whisper-cli`` binary as a subprocess. Release builds use
only the binary bundled with the application; development builds fall back
to a locally built or package-manager installed copy when the bundled one
cannot be found or launched.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Callable

from pydantic import BaseModel

from echoscribe.exceptions import EngineUnavailableError

logger = logging.getLogger(__name__)

ENGINE_BINARY = "whisper-cli"
BUILD_RELEASE = "release"
BUILD_DEV = "dev"
HOMEBREW_BINARY = Path("/opt/homebrew/bin/whisper-cpp")

Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]


class EngineCandidate(BaseModel):
    """A binary the invoker may try to launch."""

    path: str
    bundled: bool


class EngineOutput(BaseModel):
    """Result of one engine run."""

    succeeded: bool
    stderr: bytes = b""
    used_bundled: bool

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


def default_bin_dir() -> Path:
    """Directory the bundled engine ships in: next to the running executable."""
    return Path(sys.executable).parent


def bundled_binary_name() -> str:
    if sys.platform == "win32":
        return f"{ENGINE_BINARY}.exe"
    return ENGINE_BINARY


def find_fallback_binary(home: Path | None = None) -> str:
    """Locate a development engine binary.

    Search order: local CMake build, legacy local build, Homebrew, then
    whatever ``whisper-cli`` resolves to on PATH.
    """
    home = home or Path.home()
    search = [
        home / "whisper.cpp" / "build" / "bin" / "whisper-cli",
        home / "whisper.cpp" / "main",
        HOMEBREW_BINARY,
    ]
    for candidate in search:
        if candidate.exists():
            return str(candidate)
    return shutil.which(ENGINE_BINARY) or ENGINE_BINARY


class BundledLocator:
    """Release policy: only the bundled binary is ever used."""

    def __init__(self, bin_dir: Path | None = None) -> None:
        self.bin_dir = bin_dir or default_bin_dir()

    @property
    def bundled_path(self) -> Path:
        return self.bin_dir / bundled_binary_name()

    def bundled_available(self) -> bool:
        return self.bundled_path.exists()

    def runtime_ready(self) -> bool:
        return self.bundled_available()

    def candidates(self) -> list[EngineCandidate]:
        return [EngineCandidate(path=str(self.bundled_path), bundled=True)]


class FallbackLocator(BundledLocator):
    """Development policy: bundled binary first, then a discovered local one."""

    def __init__(self, bin_dir: Path | None = None, home: Path | None = None) -> None:
        super().__init__(bin_dir)
        self.home = home

    def runtime_ready(self) -> bool:
        return True

    def candidates(self) -> list[EngineCandidate]:
        return [
            EngineCandidate(path=str(self.bundled_path), bundled=True),
            EngineCandidate(path=find_fallback_binary(self.home), bundled=False),
        ]


def locator_for_build(build: str | None = None, bin_dir: Path | None = None) -> BundledLocator:
    """Pick the locator for a build profile (ECHOSCRIBE_BUILD when not given)."""
    build = (build or os.environ.get("ECHOSCRIBE_BUILD") or BUILD_RELEASE).strip().lower()
    if build in {BUILD_DEV, "development", "debug"}:
        return FallbackLocator(bin_dir)
    return BundledLocator(bin_dir)


class EngineInvoker:
    """Runs whisper-cli with the policy of its locator."""

    def __init__(self, locator: BundledLocator | None = None, runner: Runner | None = None) -> None:
        self.locator = locator or locator_for_build()
        self._runner = runner or subprocess.run

    def run(self, args: list[str]) -> EngineOutput:
        """Run the engine to completion.

        Args:
            args: Arguments passed to whisper-cli

        Returns:
            EngineOutput with exit status, captured stderr and the binary kind used

        Raises:
            EngineUnavailableError: If no candidate binary could be launched
        """
        last_error = "no engine binary configured"

        for candidate in self.locator.candidates():
            if candidate.bundled and not Path(candidate.path).exists():
                last_error = f"bundled binary not found at {candidate.path}"
                logger.debug("Whisper %s", last_error)
                continue

            cmd = [candidate.path, *args]
            logger.debug("Running %s", " ".join(cmd))
            try:
                proc = self._runner(cmd, capture_output=True)
            except OSError as e:
                last_error = f"failed to run {candidate.path}: {e}"
                logger.warning("Whisper %s", last_error)
                continue

            return EngineOutput(
                succeeded=proc.returncode == 0,
                stderr=proc.stderr or b"",
                used_bundled=candidate.bundled,
            )

        raise EngineUnavailableError(f"Whisper engine is unavailable: {last_error}")


def build_engine_args(
    model_path: Path,
    audio_path: Path,
    output_base: Path,
    language: str,
    diarize: bool,
) -> list[str]:
    """Assemble whisper-cli arguments for plain-text output."""
    args = [
        "-m",
        str(model_path),
        "-f",
        str(audio_path),
        "-otxt",
        "-of",
        str(output_base),
    ]
    if language != "auto":
        args += ["-l", language]
    if diarize:
        args.append("-tdrz")
    return args
