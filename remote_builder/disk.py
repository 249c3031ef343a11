"""Main disk image provisioning."""

from __future__ import annotations

from pathlib import Path

from remote_builder.exceptions import (
    CannotCreateDiskImage,
    CannotOpenDiskImage,
    CannotSizeDiskImage,
)
from remote_builder.utils import format_size, log


def create_main_disk(path: Path, capacity_bytes: int) -> None:
    """Create ``path`` as a sparse raw image of ``capacity_bytes``.

    Only ever called on first run. The file is created exclusively so an
    existing image is never truncated.
    """
    try:
        path.touch(exist_ok=False)
    except OSError as exc:
        raise CannotCreateDiskImage(f"Cannot create main disk image {path}: {exc}") from exc

    try:
        handle = open(path, "r+b")
    except OSError as exc:
        raise CannotOpenDiskImage(f"Cannot open main disk image {path}: {exc}") from exc

    with handle:
        try:
            handle.truncate(capacity_bytes)
        except OSError as exc:
            raise CannotSizeDiskImage(
                f"Cannot size main disk image {path} to {format_size(capacity_bytes)}: {exc}"
            ) from exc
    log("SUCCESS", f"Created main disk {path} ({format_size(capacity_bytes)}, sparse)")
