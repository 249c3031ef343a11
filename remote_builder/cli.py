"""CLI entry point for nixos-remote-builder."""

from __future__ import annotations

import argparse
import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional, Tuple

from remote_builder.bundle import BundleStore
from remote_builder.config import load_settings
from remote_builder.console import SerialConsole
from remote_builder.constants import EX_USAGE
from remote_builder.disk import create_main_disk
from remote_builder.exceptions import (
    CannotCreateDiskAttachment,
    ConfigurationError,
    ManagerError,
)
from remote_builder.identity import load_or_create_identity
from remote_builder.lifecycle import LifecycleRunner
from remote_builder.models import Settings, VMConfig
from remote_builder.service import VirtualizationService
from remote_builder.utils import format_size, log, set_verbose
from remote_builder.vm import build_configuration


class UsageArgumentParser(argparse.ArgumentParser):
    """Report usage errors on stdout with the EX_USAGE status."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stdout)
        print(f"{self.prog}: error: {message}", flush=True)
        raise SystemExit(EX_USAGE)


def build_parser() -> argparse.ArgumentParser:
    parser = UsageArgumentParser(
        prog="remote-builder",
        description="Boot a persistent libvirt VM from an installer image",
    )
    parser.add_argument("installer", type=Path, help="Path to the installer disk image")
    parser.add_argument("--config", type=Path, metavar="PATH", help="YAML settings file")
    parser.add_argument("--verbose", action="store_true", help="Show debug log lines")
    return parser


def preflight(installer: Path, settings: Settings) -> None:
    """Refuse to touch the bundle when the run could not possibly boot."""
    if not installer.is_file():
        raise CannotCreateDiskAttachment(f"Installer image not found: {installer}")
    if not os.access(installer, os.R_OK):
        raise CannotCreateDiskAttachment(f"Installer image is not readable: {installer}")
    if not settings.firmware_loader.is_file():
        raise ConfigurationError(
            f"Firmware loader not found at {settings.firmware_loader}. Ensure the 'ovmf' package is installed."
        )


def prepare_bundle(settings: Settings) -> Tuple[BundleStore, bool]:
    """Create bundle and main disk on first run; returns the first-run flag."""
    bundle = BundleStore(settings.bundle_path)
    first_run = not bundle.exists()
    if first_run:
        log("INFO", f"No VM bundle at {bundle.root}; provisioning a new VM")
        bundle.create()
        create_main_disk(bundle.layout.disk_image, settings.disk_size_bytes)
    else:
        log("INFO", f"Using existing VM bundle {bundle.root}")
    return bundle, first_run


def print_startup_banner(cfg: VMConfig) -> None:
    lines: List[str] = []
    lines.append(f"  VM: {cfg.name} ({cfg.uuid})")
    lines.append(
        f"  Arch: {cfg.arch} | Memory: {format_size(cfg.memory_bytes)} | CPUs: {cfg.cpus}"
        f" | Accel: {cfg.domain_type.upper()}"
    )
    for dev in cfg.storage_devices:
        mode = "ro" if dev.read_only else "rw"
        lines.append(f"  Disk {dev.boot_order}: {dev.path} ({dev.bus}, {mode})")
    max_len = max(len(line) for line in lines)
    border_len = max_len + 2
    banner_colour = "\033[0;36m"
    reset = "\033[0m"
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)
    for line in lines:
        print(f"{banner_colour}{line}{reset}", flush=True)
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)


def _console_factory(service: VirtualizationService):
    return lambda domain: SerialConsole(service.conn, domain)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EX_USAGE

    set_verbose(args.verbose)

    try:
        settings = load_settings(args.config)
        preflight(args.installer, settings)
        bundle, first_run = prepare_bundle(settings)
        identity = load_or_create_identity(bundle.layout, first_run, settings.firmware_vars_template)
        cfg = build_configuration(
            args.installer,
            identity.machine_identifier,
            identity.variable_store,
            bundle.layout.disk_image,
            settings,
        )
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1

    print_startup_banner(cfg)

    service = VirtualizationService(settings.libvirt_uri)
    try:
        service.connect()
        runner = LifecycleRunner(service, cfg, console_factory=_console_factory(service))
        return runner.run()
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        traceback.print_exc()
        return 1
    finally:
        service.close()
