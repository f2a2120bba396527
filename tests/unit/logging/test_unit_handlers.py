# tests/unit/logging/test_unit_handlers.py - v1
"""Tests for logging/handlers.py - size parsing and rotating handler."""

from __future__ import annotations

import pytest

from podci.logging.handlers import create_rotating_handler, parse_size


class TestParseSize:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("10MB", 10 * 1024**2), ("512kb", 512 * 1024), ("1GB", 1024**3), ("100B", 100), ("42", 42)],
    )
    def test_valid(self, raw, expected):
        assert parse_size(raw) == expected

    @pytest.mark.parametrize("raw", ["", "MB", "ten", "1.5MB", "10TB"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError, match="Invalid size format"):
            parse_size(raw)

    def test_zero(self):
        with pytest.raises(ValueError, match="positive"):
            parse_size("0MB")


class TestCreateRotatingHandler:
    def test_creates_parent(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "podci.log"
        handler = create_rotating_handler(str(path), rotation="2MB", retention=3)
        try:
            assert path.parent.is_dir()
            assert handler.maxBytes == 2 * 1024**2
            assert handler.backupCount == 3
        finally:
            handler.close()
