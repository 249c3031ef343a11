"""Tests for remote_builder.utils module."""

from __future__ import annotations

import re

import pytest

from remote_builder.exceptions import ManagerError
from remote_builder.utils import (
    deterministic_mac,
    format_size,
    log,
    normalize_arch,
    parse_size_to_bytes,
    set_verbose,
)


class TestLog:
    def test_info_level(self, capsys):
        log("INFO", "test message")
        captured = capsys.readouterr()
        assert "[INFO]" in captured.out
        assert "test message" in captured.out

    def test_debug_suppressed_by_default(self, capsys):
        log("DEBUG", "should not appear")
        captured = capsys.readouterr()
        assert captured.out == ""

    def test_debug_shown_when_verbose(self, capsys):
        set_verbose(True)
        try:
            log("DEBUG", "now visible")
        finally:
            set_verbose(False)
        assert "now visible" in capsys.readouterr().out

    def test_single_line(self, capsys):
        log("ERROR", "Cannot create VM bundle")
        out = capsys.readouterr().out
        assert out.count("\n") == 1


class TestSizes:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("64G", 64 * 1024**3),
            ("2g", 2 * 1024**3),
            ("512M", 512 * 1024**2),
            ("1T", 1024**4),
            ("4096", 4096),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_size_to_bytes(raw) == expected

    @pytest.mark.parametrize("raw", ["", "G", "1.5G", "10GB", "-1G"])
    def test_parse_invalid(self, raw):
        with pytest.raises(ManagerError, match="Invalid"):
            parse_size_to_bytes(raw)

    def test_format(self):
        assert format_size(64 * 1024**3) == "64G"
        assert format_size(1536 * 1024**2) == "1536M"
        assert format_size(1000) == "1000B"


class TestArch:
    def test_aliases(self):
        assert normalize_arch("AMD64") == "x86_64"
        assert normalize_arch("arm64") == "aarch64"
        assert normalize_arch("x86_64") == "x86_64"


class TestDeterministicMac:
    def test_stable_and_local(self):
        mac = deterministic_mac("6f1c8a52-3d2e-4b7a-9c1e-0a5b7d3e2f10")
        assert mac == deterministic_mac("6f1c8a52-3d2e-4b7a-9c1e-0a5b7d3e2f10")
        assert re.match(r"^52:54:00(:[0-9a-f]{2}){3}$", mac)
        assert int(mac.split(":")[3], 16) & 0x02
