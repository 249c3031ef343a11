"""libvirt-backed virtualization service."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, NamedTuple, Optional

try:
    import libvirt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit(f"libvirt python bindings not available: {exc}")

from remote_builder.exceptions import (
    CannotStartVirtualMachine,
    InvalidConfiguration,
    ManagerError,
)
from remote_builder.utils import log


class GuestStop(NamedTuple):
    reason: str
    clean: bool


_STOP_REASONS = {
    "VIR_DOMAIN_EVENT_STOPPED_SHUTDOWN": ("guest shutdown", True),
    "VIR_DOMAIN_EVENT_STOPPED_DESTROYED": ("destroyed", True),
    "VIR_DOMAIN_EVENT_STOPPED_CRASHED": ("guest crashed", False),
    "VIR_DOMAIN_EVENT_STOPPED_MIGRATED": ("migrated", True),
    "VIR_DOMAIN_EVENT_STOPPED_SAVED": ("saved", True),
    "VIR_DOMAIN_EVENT_STOPPED_FAILED": ("hypervisor failure", False),
    "VIR_DOMAIN_EVENT_STOPPED_FROM_SNAPSHOT": ("restored from snapshot", True),
}


def describe_stop(detail: int) -> GuestStop:
    for constant, (reason, clean) in _STOP_REASONS.items():
        if getattr(libvirt, constant, None) == detail:
            return GuestStop(reason, clean)
    return GuestStop(f"unknown reason {detail}", True)


def error_message(exc: Exception) -> str:
    if hasattr(exc, "get_error_message"):
        message = exc.get_error_message()
        if message:
            return message
    return str(exc)


class VirtualizationService:
    """The hypervisor collaborator: validate, start, and report guest stop.

    Callbacks from libvirt are delivered on a dedicated event-loop thread;
    ``start`` runs the blocking ``createWithFlags()`` call on a single worker so
    the caller receives a ``Future``.
    """

    def __init__(self, uri: str) -> None:
        self.uri = uri
        self.conn: Optional[libvirt.virConnect] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._callback_ids: List[int] = []

    def connect(self) -> None:
        # The default event implementation must exist before the connection is opened.
        libvirt.virEventRegisterDefaultImpl()
        self._loop_thread = threading.Thread(
            target=self._run_event_loop, name="libvirt-events", daemon=True
        )
        self._loop_thread.start()
        try:
            self.conn = libvirt.open(self.uri)
        except libvirt.libvirtError as exc:
            raise ManagerError(f"Failed to open libvirt connection to {self.uri}: {error_message(exc)}") from exc
        if self.conn is None:
            raise ManagerError(f"Failed to open libvirt connection to {self.uri}")
        log("DEBUG", f"Connected to {self.uri}")

    @staticmethod
    def _run_event_loop() -> None:
        while True:
            libvirt.virEventRunDefaultImpl()

    def _require_conn(self) -> libvirt.virConnect:
        if self.conn is None:
            raise ManagerError("libvirt connection not established")
        return self.conn

    def validate(self, xml: str) -> libvirt.virDomain:
        """Define the domain with schema validation; rejection is fatal."""
        conn = self._require_conn()
        try:
            domain = conn.defineXMLFlags(xml, libvirt.VIR_DOMAIN_DEFINE_VALIDATE)
        except libvirt.libvirtError as exc:
            raise InvalidConfiguration(f"Invalid VM configuration: {error_message(exc)}") from exc
        if domain is None:
            raise InvalidConfiguration("libvirt did not accept the VM configuration")
        log("DEBUG", f"Defined domain {domain.name()}")
        return domain

    def start(self, domain: libvirt.virDomain) -> "Future[None]":
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vm-start")
        return self._executor.submit(self._create, domain)

    @staticmethod
    def _create(domain: libvirt.virDomain) -> None:
        # The guest is destroyed when this connection closes, including when the process is killed.
        try:
            domain.createWithFlags(libvirt.VIR_DOMAIN_START_AUTODESTROY)
        except libvirt.libvirtError as exc:
            raise CannotStartVirtualMachine(f"Failed to start VM: {error_message(exc)}") from exc

    def on_guest_stopped(self, domain: libvirt.virDomain, callback: Callable[[GuestStop], None]) -> None:
        conn = self._require_conn()

        def _lifecycle(_conn, _dom, event, detail, _opaque):
            if event == libvirt.VIR_DOMAIN_EVENT_STOPPED:
                callback(describe_stop(detail))

        callback_id = conn.domainEventRegisterAny(
            domain, libvirt.VIR_DOMAIN_EVENT_ID_LIFECYCLE, _lifecycle, None
        )
        self._callback_ids.append(callback_id)

    def on_connection_closed(self, callback: Callable[[int], None]) -> None:
        conn = self._require_conn()
        conn.registerCloseCallback(lambda _conn, reason, _opaque: callback(reason), None)

    def release(self, domain: libvirt.virDomain) -> None:
        """Stop a still-running guest and drop its definition, keeping NVRAM."""
        try:
            if domain.isActive():
                log("INFO", "Stopping VM")
                domain.destroy()
        except libvirt.libvirtError as exc:
            log("DEBUG", f"Could not destroy domain: {error_message(exc)}")
        try:
            domain.undefineFlags(libvirt.VIR_DOMAIN_UNDEFINE_KEEP_NVRAM)
        except libvirt.libvirtError as exc:
            log("DEBUG", f"Could not undefine domain: {error_message(exc)}")

    def close(self) -> None:
        if self.conn is not None:
            for callback_id in self._callback_ids:
                try:
                    self.conn.domainEventDeregisterAny(callback_id)
                except libvirt.libvirtError:
                    log("DEBUG", f"Could not deregister event callback {callback_id}")
            self._callback_ids = []
            self.conn.close()
            self.conn = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
