"""Shared test fixtures."""

from __future__ import annotations

from concurrent.futures import Future
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from remote_builder.identity import EfiVariableStore, MachineIdentifier
from remote_builder.models import (
    BootLoader,
    NicConfig,
    Settings,
    StorageDevice,
    VMConfig,
)
from remote_builder.service import GuestStop

TEST_UUID = "6f1c8a52-3d2e-4b7a-9c1e-0a5b7d3e2f10"


@pytest.fixture
def firmware_files(tmp_path) -> tuple:
    """Fake firmware loader and vars template on disk."""
    fw_dir = tmp_path / "firmware"
    fw_dir.mkdir()
    loader = fw_dir / "OVMF_CODE.fd"
    loader.write_bytes(b"\x00" * 64)
    vars_template = fw_dir / "OVMF_VARS.fd"
    vars_template.write_bytes(b"PRISTINE-VARS")
    return loader, vars_template


@pytest.fixture
def settings(tmp_path, firmware_files) -> Settings:
    loader, vars_template = firmware_files
    return Settings(
        bundle_path=tmp_path / "home" / "NixOSRemoteBuilder.bundle",
        vm_name="test-vm",
        cpus=2,
        memory_bytes=2 * 1024**3,
        disk_size_bytes=64 * 1024**3,
        libvirt_uri="qemu:///session",
        arch="x86_64",
        firmware_loader=loader,
        firmware_vars_template=vars_template,
    )


@pytest.fixture
def installer(tmp_path) -> Path:
    path = tmp_path / "nixos-minimal.iso"
    path.write_bytes(b"ISO" * 100)
    return path


@pytest.fixture
def config_file(tmp_path, settings):
    """Write ``settings`` to a YAML file usable with ``--config``."""
    path = tmp_path / "remote-builder.yaml"
    path.write_text(
        "\n".join(
            [
                f"bundle_path: {settings.bundle_path}",
                f"vm_name: {settings.vm_name}",
                "arch: x86_64",
                "disk_size: 64G",
                f"firmware_loader: {settings.firmware_loader}",
                f"firmware_vars_template: {settings.firmware_vars_template}",
            ]
        )
        + "\n"
    )
    return path


@pytest.fixture
def default_vm_config(tmp_path) -> VMConfig:
    """Return a minimal VMConfig with sensible defaults."""
    return VMConfig(
        name="test-vm",
        uuid=TEST_UUID,
        arch="x86_64",
        machine="q35",
        domain_type="qemu",
        cpu_model="qemu64",
        cpus=2,
        memory_bytes=2 * 1024**3,
        boot_loader=BootLoader(loader=Path("/usr/share/OVMF/OVMF_CODE_4M.fd"), variable_store=tmp_path / "NVRAM"),
        storage_devices=[
            StorageDevice(path=tmp_path / "installer.iso", bus="usb", read_only=True, boot_order=1),
            StorageDevice(path=tmp_path / "Disk.img", bus="virtio", read_only=False, boot_order=2),
        ],
        nics=[NicConfig(mode="user", mac_address="52:54:00:aa:bb:cc")],
        features=("acpi", "apic"),
    )


@pytest.fixture
def identity(tmp_path):
    nvram = tmp_path / "NVRAM"
    nvram.write_bytes(b"")
    return MachineIdentifier(TEST_UUID.encode("ascii")), EfiVariableStore(nvram)


class FakeService:
    """In-memory stand-in for VirtualizationService.

    ``start`` returns ``start_future`` (a never-completing future by
    default) so tests can feed lifecycle events themselves.
    """

    def __init__(
        self,
        start_future: Optional[Future] = None,
        validate_error: Optional[Exception] = None,
        stop_during_start: Optional[GuestStop] = None,
    ) -> None:
        self.conn = MagicMock()
        self.domain = MagicMock(name="domain")
        self.start_future = start_future if start_future is not None else Future()
        self.validate_error = validate_error
        self.stop_during_start = stop_during_start
        self.calls: List[str] = []
        self.xml: Optional[str] = None
        self.stop_callback = None
        self.close_callback = None

    def connect(self) -> None:
        self.calls.append("connect")

    def validate(self, xml: str):
        self.calls.append("validate")
        self.xml = xml
        if self.validate_error is not None:
            raise self.validate_error
        return self.domain

    def on_guest_stopped(self, domain, callback) -> None:
        self.calls.append("on_guest_stopped")
        self.stop_callback = callback

    def on_connection_closed(self, callback) -> None:
        self.close_callback = callback

    def start(self, domain) -> Future:
        self.calls.append("start")
        if self.stop_during_start is not None:
            self.stop_callback(self.stop_during_start)
        return self.start_future

    def release(self, domain) -> None:
        self.calls.append("release")

    def close(self) -> None:
        self.calls.append("close")


def completed_future(exc: Optional[Exception] = None) -> Future:
    future: Future = Future()
    if exc is None:
        future.set_result(None)
    else:
        future.set_exception(exc)
    return future


@pytest.fixture
def fake_service_factory():
    return FakeService


@pytest.fixture
def make_future():
    return completed_future
