"""Machine identity and EFI variable store management."""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Optional

from remote_builder.exceptions import (
    CannotCreateStore,
    CannotFindStore,
    CannotPersistIdentifier,
    MalformedIdentifier,
    MissingIdentifierData,
)
from remote_builder.models import BundleLayout
from remote_builder.utils import log


@dataclass(frozen=True)
class MachineIdentifier:
    """Stable guest identity, serialized as the canonical UUID text.

    libvirt uses it as the domain UUID, which the guest sees as its SMBIOS
    system UUID.
    """

    data: bytes

    @property
    def uuid(self) -> str:
        return self.data.decode("ascii")

    @classmethod
    def generate(cls) -> "MachineIdentifier":
        return cls(str(uuid.uuid4()).encode("ascii"))

    @classmethod
    def from_data(cls, data: bytes) -> "MachineIdentifier":
        try:
            text = data.decode("ascii")
            parsed = uuid.UUID(text)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedIdentifier(f"Machine identifier is not a valid UUID: {data[:64]!r}") from exc
        if str(parsed) != text:
            raise MalformedIdentifier(f"Machine identifier is not in canonical form: {text!r}")
        return cls(data)

    @classmethod
    def create_new(cls, path: Path) -> "MachineIdentifier":
        identifier = cls.generate()
        try:
            with open(path, "xb") as f:
                f.write(identifier.data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            raise CannotPersistIdentifier(f"Cannot write machine identifier to {path}: {exc}") from exc
        log("SUCCESS", f"Created machine identifier {identifier.uuid}")
        return identifier

    @classmethod
    def load(cls, path: Path) -> "MachineIdentifier":
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise MissingIdentifierData(f"Cannot read machine identifier {path}: {exc}") from exc
        identifier = cls.from_data(data)
        log("INFO", f"Loaded machine identifier {identifier.uuid}")
        return identifier


@dataclass(frozen=True)
class EfiVariableStore:
    path: Path

    @classmethod
    def create_new(cls, path: Path, template: Optional[Path] = None) -> "EfiVariableStore":
        """Create a fresh store, seeded from the firmware's pristine vars when given."""
        contents = b""
        if template is not None:
            try:
                contents = template.read_bytes()
            except OSError as exc:
                raise CannotCreateStore(
                    f"Cannot read firmware variable template {template}: {exc}"
                ) from exc
        try:
            with open(path, "xb") as f:
                f.write(contents)
        except OSError as exc:
            raise CannotCreateStore(f"Cannot create EFI variable store {path}: {exc}") from exc
        log("SUCCESS", f"Created EFI variable store {path}")
        return cls(path)

    @classmethod
    def load(cls, path: Path) -> "EfiVariableStore":
        if not path.is_file():
            raise CannotFindStore(f"EFI variable store not found: {path}")
        log("INFO", f"Using EFI variable store {path}")
        return cls(path)


class Identity(NamedTuple):
    machine_identifier: MachineIdentifier
    variable_store: EfiVariableStore


def load_or_create_identity(
    layout: BundleLayout,
    first_run: bool,
    vars_template: Optional[Path] = None,
) -> Identity:
    """Create both identity resources on first run, load both otherwise."""
    if first_run:
        store = EfiVariableStore.create_new(layout.nvram, vars_template)
        identifier = MachineIdentifier.create_new(layout.machine_identifier)
    else:
        store = EfiVariableStore.load(layout.nvram)
        identifier = MachineIdentifier.load(layout.machine_identifier)
    return Identity(identifier, store)
