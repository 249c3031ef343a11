"""Data models for nixos-remote-builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from remote_builder.constants import (
    DISK_IMAGE_NAME,
    MACHINE_IDENTIFIER_NAME,
    NVRAM_NAME,
)


@dataclass(frozen=True)
class BundleLayout:
    root: Path

    @property
    def nvram(self) -> Path:
        return self.root / NVRAM_NAME

    @property
    def disk_image(self) -> Path:
        return self.root / DISK_IMAGE_NAME

    @property
    def machine_identifier(self) -> Path:
        return self.root / MACHINE_IDENTIFIER_NAME


@dataclass
class Settings:
    bundle_path: Path
    vm_name: str
    cpus: int
    memory_bytes: int
    disk_size_bytes: int
    libvirt_uri: str
    arch: str
    firmware_loader: Path
    firmware_vars_template: Optional[Path]

    @property
    def layout(self) -> BundleLayout:
        return BundleLayout(self.bundle_path)


@dataclass
class BootLoader:
    loader: Path
    variable_store: Path


@dataclass
class StorageDevice:
    path: Path
    bus: str  # "usb" or "virtio"
    read_only: bool
    boot_order: int


@dataclass
class SerialConsoleConfig:
    target_type: str = "virtio"
    raw_mode: bool = True


@dataclass
class NicConfig:
    mode: str = "user"
    mac_address: Optional[str] = None
    model: str = "virtio"


@dataclass
class VMConfig:
    name: str
    uuid: str
    arch: str
    machine: str
    domain_type: str  # "kvm" or "qemu"
    cpu_model: str
    cpus: int
    memory_bytes: int
    boot_loader: BootLoader
    storage_devices: List[StorageDevice] = field(default_factory=list)
    serial_console: SerialConsoleConfig = field(default_factory=SerialConsoleConfig)
    nics: List[NicConfig] = field(default_factory=list)
    features: tuple = ()
    rng_enabled: bool = True
    balloon_enabled: bool = True
