"""VM configuration assembly and libvirt domain XML rendering."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional
from xml.dom.minidom import parseString
from xml.etree.ElementTree import Element, SubElement, tostring

from remote_builder.constants import SUPPORTED_ARCHES
from remote_builder.exceptions import CannotCreateDiskAttachment, ConfigurationError
from remote_builder.identity import EfiVariableStore, MachineIdentifier
from remote_builder.models import (
    BootLoader,
    NicConfig,
    SerialConsoleConfig,
    Settings,
    StorageDevice,
    VMConfig,
)
from remote_builder.network import render_network_element
from remote_builder.utils import deterministic_mac, kvm_available, log

DEV_PREFIXES = {"usb": "sd", "virtio": "vd"}


def disk_attachment(path: Path, read_only: bool, bus: str, boot_order: int) -> StorageDevice:
    """Describe a file-backed disk, refusing images the hypervisor could not open."""
    if not path.is_file():
        raise CannotCreateDiskAttachment(f"Disk image not found: {path}")
    mode = os.R_OK if read_only else os.R_OK | os.W_OK
    if not os.access(path, mode):
        access = "readable" if read_only else "readable and writable"
        raise CannotCreateDiskAttachment(f"Disk image is not {access}: {path}")
    return StorageDevice(path=path.resolve(), bus=bus, read_only=read_only, boot_order=boot_order)


def build_configuration(
    installer_path: Path,
    identifier: MachineIdentifier,
    store: EfiVariableStore,
    disk_path: Path,
    settings: Settings,
    kvm: Optional[bool] = None,
) -> VMConfig:
    """Assemble the VM descriptor for this run.

    The installer comes first in the storage list and in boot order so
    the firmware finds it before the (possibly empty) main disk.
    """
    if kvm is None:
        kvm = kvm_available()
    profile = SUPPORTED_ARCHES[settings.arch]

    if not settings.firmware_loader.is_file():
        raise ConfigurationError(f"Firmware loader not found at {settings.firmware_loader}")

    storage = [
        disk_attachment(installer_path, read_only=True, bus="usb", boot_order=1),
        disk_attachment(disk_path, read_only=False, bus="virtio", boot_order=2),
    ]

    if kvm:
        domain_type, cpu_model = "kvm", "host-passthrough"
    else:
        domain_type, cpu_model = "qemu", profile["tcg_fallback"]
        log("WARN", f"/dev/kvm not available; using software emulation (CPU model {cpu_model})")

    return VMConfig(
        name=settings.vm_name,
        uuid=identifier.uuid,
        arch=settings.arch,
        machine=profile["machine"],
        domain_type=domain_type,
        cpu_model=cpu_model,
        cpus=settings.cpus,
        memory_bytes=settings.memory_bytes,
        boot_loader=BootLoader(loader=settings.firmware_loader, variable_store=store.path),
        storage_devices=storage,
        serial_console=SerialConsoleConfig(),
        nics=[NicConfig(mode="user", mac_address=deterministic_mac(identifier.uuid))],
        features=tuple(profile["features"]),
    )


def render_domain_xml(cfg: VMConfig) -> str:
    domain = Element("domain", type=cfg.domain_type)

    SubElement(domain, "name").text = cfg.name
    SubElement(domain, "uuid").text = cfg.uuid
    SubElement(domain, "memory", unit="b").text = str(cfg.memory_bytes)
    SubElement(domain, "vcpu", placement="static").text = str(cfg.cpus)

    # <os>
    os_el = SubElement(domain, "os")
    SubElement(os_el, "type", arch=cfg.arch, machine=cfg.machine).text = "hvm"
    loader = SubElement(os_el, "loader", readonly="yes", secure="no", type="pflash")
    loader.text = str(cfg.boot_loader.loader)
    SubElement(os_el, "nvram").text = str(cfg.boot_loader.variable_store)

    if cfg.features:
        features_el = SubElement(domain, "features")
        for feature in cfg.features:
            SubElement(features_el, feature)

    if cfg.cpu_model == "host-passthrough":
        SubElement(domain, "cpu", mode="host-passthrough")
    else:
        cpu_el = SubElement(domain, "cpu", mode="custom", match="exact")
        SubElement(cpu_el, "model", fallback="allow").text = cfg.cpu_model

    # <devices>
    devices = SubElement(domain, "devices")
    if any(dev.bus == "usb" for dev in cfg.storage_devices):
        SubElement(devices, "controller", type="usb", model="qemu-xhci")

    next_letter: Dict[str, int] = {}
    for dev in cfg.storage_devices:
        prefix = DEV_PREFIXES[dev.bus]
        letter = chr(ord("a") + next_letter.get(prefix, 0))
        next_letter[prefix] = next_letter.get(prefix, 0) + 1

        disk = SubElement(devices, "disk", type="file", device="disk")
        SubElement(disk, "driver", name="qemu", type="raw")
        SubElement(disk, "source", file=str(dev.path))
        SubElement(disk, "target", dev=f"{prefix}{letter}", bus=dev.bus)
        if dev.read_only:
            SubElement(disk, "readonly")
        SubElement(disk, "boot", order=str(dev.boot_order))

    for nic in cfg.nics:
        devices.append(render_network_element(nic))

    console = SubElement(devices, "console", type="pty")
    SubElement(console, "target", type=cfg.serial_console.target_type, port="0")

    if cfg.rng_enabled:
        rng = SubElement(devices, "rng", model="virtio")
        SubElement(rng, "backend", model="random").text = "/dev/urandom"

    if cfg.balloon_enabled:
        SubElement(devices, "memballoon", model="virtio")

    raw = tostring(domain, encoding="unicode")
    return parseString(raw).documentElement.toprettyxml(indent="  ").strip()
