"""Configuration file loading for nixos-remote-builder."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from remote_builder.constants import (
    DEFAULT_BUNDLE_PATH,
    DEFAULT_CPUS,
    DEFAULT_DISK_SIZE,
    DEFAULT_MEMORY,
    DEFAULT_VM_NAME,
    LIBVIRT_URI,
    SUPPORTED_ARCHES,
)
from remote_builder.exceptions import InvalidSettings, ManagerError
from remote_builder.models import Settings
from remote_builder.utils import host_arch, log, normalize_arch, parse_size_to_bytes

KNOWN_KEYS = {
    "bundle_path",
    "vm_name",
    "cpus",
    "memory",
    "disk_size",
    "libvirt_uri",
    "arch",
    "firmware_loader",
    "firmware_vars_template",
}


def load_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise InvalidSettings(f"Configuration file missing: {path}")
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise InvalidSettings(f"Cannot read configuration file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidSettings(f"Configuration file {path} must contain a mapping")
    unknown = sorted(set(data) - KNOWN_KEYS)
    if unknown:
        raise InvalidSettings(f"Unknown configuration keys in {path}: {', '.join(unknown)}")
    return data


def parse_int_setting(data: Dict[str, Any], name: str, default: int, min_val: int = 1) -> int:
    raw = data.get(name, default)
    if isinstance(raw, bool):
        raise InvalidSettings(f"{name} must be an integer (got '{raw}')")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidSettings(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise InvalidSettings(f"{name} must be >= {min_val} (got {value})")
    return value


def parse_size_setting(data: Dict[str, Any], name: str, default: str) -> int:
    try:
        value = parse_size_to_bytes(str(data.get(name, default)), name)
    except ManagerError as exc:
        raise InvalidSettings(str(exc)) from exc
    if value <= 0:
        raise InvalidSettings(f"{name} must be greater than zero")
    return value


def _optional_path(data: Dict[str, Any], name: str) -> Optional[Path]:
    raw = data.get(name)
    if raw is None:
        return None
    return Path(str(raw)).expanduser()


def load_settings(path: Optional[Path] = None) -> Settings:
    data = load_config_file(path) if path is not None else {}

    arch = normalize_arch(str(data.get("arch") or host_arch()))
    if arch not in SUPPORTED_ARCHES:
        supported = ", ".join(sorted(SUPPORTED_ARCHES))
        raise InvalidSettings(f"Unsupported architecture '{arch}' (supported: {supported})")
    firmware = SUPPORTED_ARCHES[arch]["firmware"]

    loader = _optional_path(data, "firmware_loader") or firmware["loader"]
    if "firmware_vars_template" in data:
        vars_template = _optional_path(data, "firmware_vars_template")
    else:
        vars_template = firmware["vars_template"]

    bundle_path = _optional_path(data, "bundle_path") or DEFAULT_BUNDLE_PATH
    vm_name = str(data.get("vm_name") or DEFAULT_VM_NAME).strip()
    if not vm_name:
        raise InvalidSettings("vm_name must not be empty")

    settings = Settings(
        bundle_path=bundle_path,
        vm_name=vm_name,
        cpus=parse_int_setting(data, "cpus", DEFAULT_CPUS),
        memory_bytes=parse_size_setting(data, "memory", DEFAULT_MEMORY),
        disk_size_bytes=parse_size_setting(data, "disk_size", DEFAULT_DISK_SIZE),
        libvirt_uri=str(data.get("libvirt_uri") or LIBVIRT_URI),
        arch=arch,
        firmware_loader=loader,
        firmware_vars_template=vars_template,
    )
    log("DEBUG", f"Settings: {settings}")
    return settings
