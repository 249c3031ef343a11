"""Tests for remote_builder.bundle module."""

from __future__ import annotations

import pytest

from remote_builder.bundle import BundleStore
from remote_builder.exceptions import CannotCreateBundle


class TestBundleStore:
    def test_missing_directory_does_not_exist(self, tmp_path):
        assert BundleStore(tmp_path / "vm.bundle").exists() is False

    def test_create_makes_intermediate_parents(self, tmp_path):
        root = tmp_path / "a" / "b" / "vm.bundle"
        bundle = BundleStore(root)
        bundle.create()
        assert root.is_dir()
        assert bundle.exists() is True

    def test_create_when_present_is_success(self, tmp_path):
        root = tmp_path / "vm.bundle"
        root.mkdir()
        (root / "Disk.img").write_bytes(b"guest data")
        BundleStore(root).create()
        assert (root / "Disk.img").read_bytes() == b"guest data"

    def test_regular_file_at_path_raises(self, tmp_path):
        root = tmp_path / "vm.bundle"
        root.write_text("not a directory")
        bundle = BundleStore(root)
        assert bundle.exists() is False
        with pytest.raises(CannotCreateBundle, match="Cannot create VM bundle"):
            bundle.create()

    def test_layout_members(self, tmp_path):
        layout = BundleStore(tmp_path / "vm.bundle").layout
        assert layout.nvram.name == "NVRAM"
        assert layout.disk_image.name == "Disk.img"
        assert layout.machine_identifier.name == "MachineIdentifier"
        assert layout.nvram.parent == tmp_path / "vm.bundle"
