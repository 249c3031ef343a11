"""Utility functions for nixos-remote-builder."""

from __future__ import annotations

import hashlib
import os
import platform
from pathlib import Path

from remote_builder.constants import ARCH_ALIASES, SIZE_RE, SIZE_UNITS
from remote_builder.exceptions import ManagerError

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def log(level: str, message: str) -> None:
    """Lightweight structured logging with a coloured level tag."""
    if level == "DEBUG" and not _verbose:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def parse_size_to_bytes(raw: str, name: str = "size") -> int:
    """Convert a size string such as ``64G`` or ``512M`` to bytes."""
    match = SIZE_RE.match(str(raw).strip())
    if not match:
        raise ManagerError(
            f"Invalid {name} '{raw}'. Use a number with optional suffix: K, M, G, T (e.g. '64G')"
        )
    number, unit = match.groups()
    return int(number) * SIZE_UNITS[unit.upper()]


def format_size(num_bytes: int) -> str:
    for suffix, factor in (("T", 1024**4), ("G", 1024**3), ("M", 1024**2), ("K", 1024)):
        if num_bytes >= factor and num_bytes % factor == 0:
            return f"{num_bytes // factor}{suffix}"
    return f"{num_bytes}B"


def normalize_arch(raw: str) -> str:
    lowered = raw.strip().lower()
    return ARCH_ALIASES.get(lowered, lowered)


def host_arch() -> str:
    return normalize_arch(platform.machine())


def kvm_available() -> bool:
    """Return True if /dev/kvm exists and can be opened."""
    kvm_path = Path("/dev/kvm")
    if not kvm_path.exists():
        return False
    try:
        fd = os.open(kvm_path, os.O_RDONLY)
    except OSError:
        return False
    else:
        os.close(fd)
        return True



def deterministic_mac(seed: str) -> str:
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    octets = [0x52, 0x54, 0x00, digest[0], digest[1], digest[2]]
    octets[3] = octets[3] | 0x02  # ensure locally administered bit
    octets[3] = octets[3] & 0xFE  # clear multicast bit
    return ":".join(f"{octet:02x}" for octet in octets)
