"""Persistent VM bundle directory."""

from __future__ import annotations

from pathlib import Path

from remote_builder.exceptions import CannotCreateBundle
from remote_builder.models import BundleLayout
from remote_builder.utils import log


class BundleStore:
    """The directory holding the machine identifier, NVRAM and main disk.

    Existence of the directory is the only first-run signal, so callers
    should capture ``exists()`` once at start-up and branch on that value.
    """

    def __init__(self, root: Path) -> None:
        self.layout = BundleLayout(root)

    @property
    def root(self) -> Path:
        return self.layout.root

    def exists(self) -> bool:
        return self.root.is_dir()

    def create(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CannotCreateBundle(f"Cannot create VM bundle at {self.root}: {exc}") from exc
        log("SUCCESS", f"Created VM bundle {self.root}")
