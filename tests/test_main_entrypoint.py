"""Tests for remote_builder.__main__ entrypoint."""

from __future__ import annotations

import runpy
from unittest.mock import patch

import pytest


def test_module_entrypoint_exits_with_cli_status():
    with patch("remote_builder.cli.main", return_value=64) as mock_main:
        with pytest.raises(SystemExit) as exc:
            runpy.run_module("remote_builder.__main__", run_name="__main__")
    assert exc.value.code == 64
    mock_main.assert_called_once_with()
