"""
echoscribe.reveal - Show a saved transcript in the platform file manager.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Callable

from echoscribe.exceptions import FilesystemError

Launcher = Callable[[list[str]], object]


class MacReveal:
    def command(self, path: Path) -> list[str]:
        return ["open", "-R", str(path)]


class WindowsReveal:
    def command(self, path: Path) -> list[str]:
        return ["explorer", f"/select,{path}"]


class LinuxReveal:
    """xdg-open cannot select a file, so the containing folder is opened."""

    def command(self, path: Path) -> list[str]:
        return ["xdg-open", str(path.parent)]


def reveal_strategy(platform: str | None = None) -> MacReveal | WindowsReveal | LinuxReveal:
    platform = platform or sys.platform
    if platform == "darwin":
        return MacReveal()
    if platform.startswith("win"):
        return WindowsReveal()
    return LinuxReveal()


def reveal_in_file_manager(
    path: Path,
    strategy: MacReveal | WindowsReveal | LinuxReveal | None = None,
    launcher: Launcher | None = None,
) -> None:
    """Open the file manager focused on path."""
    strategy = strategy or reveal_strategy()
    launcher = launcher or subprocess.Popen
    try:
        launcher(strategy.command(path))
    except OSError as e:
        raise FilesystemError("Failed to open file manager", path, e) from e
