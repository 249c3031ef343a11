"""Global constants and path configuration for nixos-remote-builder."""

from __future__ import annotations

import os
import re
from pathlib import Path

BUNDLE_DIR_NAME = "NixOSRemoteBuilder.bundle"
DEFAULT_BUNDLE_PATH = Path.home() / BUNDLE_DIR_NAME

# Bundle members
NVRAM_NAME = "NVRAM"
DISK_IMAGE_NAME = "Disk.img"
MACHINE_IDENTIFIER_NAME = "MachineIdentifier"

DEFAULT_VM_NAME = "nixos-remote-builder"
DEFAULT_CPUS = 2
DEFAULT_MEMORY = "2G"
DEFAULT_DISK_SIZE = "64G"
LIBVIRT_URI = "qemu:///session"

EX_USAGE = getattr(os, "EX_USAGE", 64)

SIZE_RE = re.compile(r"^(\d+)([KMGTkmgt]?)$")
SIZE_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}

SUPPORTED_ARCHES = {
    "x86_64": {
        "machine": "q35",
        "features": ("acpi", "apic"),
        "tcg_fallback": "qemu64",
        "firmware": {
            "loader": Path("/usr/share/OVMF/OVMF_CODE_4M.fd"),
            "vars_template": Path("/usr/share/OVMF/OVMF_VARS_4M.fd"),
        },
    },
    "aarch64": {
        "machine": "virt",
        "features": ("acpi",),
        "tcg_fallback": "cortex-a72",
        "firmware": {
            "loader": Path("/usr/share/AAVMF/AAVMF_CODE.fd"),
            "vars_template": Path("/usr/share/AAVMF/AAVMF_VARS.fd"),
        },
    },
}

ARCH_ALIASES = {
    "amd64": "x86_64",
    "arm64": "aarch64",
}
