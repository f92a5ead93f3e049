"""Tests for echoscribe.utils module."""

from __future__ import annotations

from echoscribe.utils import format_duration, format_size, sanitize_non_empty


class TestSanitizeNonEmpty:
    def test_none(self) -> None:
        assert sanitize_non_empty(None) is None

    def test_blank(self) -> None:
        assert sanitize_non_empty("   ") is None

    def test_trims(self) -> None:
        assert sanitize_non_empty("  Acme \n") == "Acme"


class TestFormatDuration:
    def test_seconds_only(self) -> None:
        assert format_duration(45) == "0:45"

    def test_minutes_and_seconds(self) -> None:
        assert format_duration(125) == "2:05"

    def test_hours_minutes_seconds(self) -> None:
        assert format_duration(3725) == "1:02:05"

    def test_zero(self) -> None:
        assert format_duration(0) == "0:00"


class TestFormatSize:
    def test_bytes(self) -> None:
        assert format_size(500) == "500.0 B"

    def test_kilobytes(self) -> None:
        assert format_size(1536) == "1.5 KB"

    def test_megabytes(self) -> None:
        assert format_size(1572864) == "1.5 MB"

    def test_gigabytes(self) -> None:
        assert format_size(1610612736) == "1.5 GB"
