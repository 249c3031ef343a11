"""VM lifecycle state machine."""

from __future__ import annotations

import enum
import queue
from concurrent.futures import Future
from typing import Callable, NamedTuple, Optional

from remote_builder.exceptions import ManagerError
from remote_builder.models import VMConfig
from remote_builder.service import GuestStop
from remote_builder.utils import log
from remote_builder.vm import render_domain_xml


class LifecycleState(enum.Enum):
    NOT_STARTED = "not-started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


_TRANSITIONS = {
    LifecycleState.NOT_STARTED: {LifecycleState.STARTING, LifecycleState.FAILED},
    LifecycleState.STARTING: {LifecycleState.RUNNING, LifecycleState.FAILED},
    LifecycleState.RUNNING: {LifecycleState.STOPPED, LifecycleState.FAILED},
    LifecycleState.STOPPED: set(),
    LifecycleState.FAILED: set(),
}


class EventKind(enum.Enum):
    STARTED = "started"
    START_FAILED = "start-failed"
    GUEST_STOPPED = "guest-stopped"
    CONNECTION_LOST = "connection-lost"


class LifecycleEvent(NamedTuple):
    kind: EventKind
    message: str = ""
    clean: bool = True


class LifecycleRunner:
    """Drive one VM from validated configuration to guest shutdown.

    Start completion and guest stop both arrive on ``self.events``; the
    caller's thread blocks on that queue and does no polling. A stop that
    races ahead of the start callback is held until the VM is running.
    """

    def __init__(self, service, cfg: VMConfig, console_factory: Optional[Callable] = None) -> None:
        self.service = service
        self.cfg = cfg
        self.console_factory = console_factory
        self.state = LifecycleState.NOT_STARTED
        self.events: "queue.Queue[LifecycleEvent]" = queue.Queue()
        self._console = None

    def _transition(self, new_state: LifecycleState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ManagerError(f"Invalid lifecycle transition {self.state.value} -> {new_state.value}")
        log("DEBUG", f"Lifecycle: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def run(self) -> int:
        xml = render_domain_xml(self.cfg)
        log("DEBUG", f"Domain XML:\n{xml}")
        try:
            domain = self.service.validate(xml)
        except ManagerError:
            self._transition(LifecycleState.FAILED)
            raise
        try:
            return self._drive(domain)
        finally:
            self._detach_console()
            self.service.release(domain)

    def _drive(self, domain) -> int:
        self.service.on_guest_stopped(domain, self._guest_stopped)
        self.service.on_connection_closed(self._connection_closed)

        self._transition(LifecycleState.STARTING)
        future = self.service.start(domain)
        future.add_done_callback(self._start_completed)

        pending_stop: Optional[LifecycleEvent] = None
        while True:
            event = self.events.get()
            if event.kind is EventKind.GUEST_STOPPED and self.state is LifecycleState.STARTING:
                pending_stop = event
                continue
            status = self._handle(event, domain)
            if status is not None:
                return status
            if pending_stop is not None and self.state is LifecycleState.RUNNING:
                return self._handle(pending_stop, domain)

    def _handle(self, event: LifecycleEvent, domain) -> Optional[int]:
        if event.kind is EventKind.STARTED:
            self._transition(LifecycleState.RUNNING)
            print("Launching VM...", flush=True)
            self._attach_console(domain)
            return None
        if event.kind is EventKind.START_FAILED:
            self._transition(LifecycleState.FAILED)
            log("ERROR", event.message)
            return 1
        if event.kind is EventKind.GUEST_STOPPED:
            if not event.clean:
                self._transition(LifecycleState.FAILED)
                log("ERROR", f"The guest stopped unexpectedly ({event.message})")
                return 1
            self._transition(LifecycleState.STOPPED)
            self._detach_console()
            print("The guest shut down. Exiting.", flush=True)
            return 0
        self._transition(LifecycleState.FAILED)
        log("ERROR", event.message)
        return 1

    def _start_completed(self, future: "Future[None]") -> None:
        exc = future.exception()
        if exc is None:
            self.events.put(LifecycleEvent(EventKind.STARTED))
        else:
            self.events.put(LifecycleEvent(EventKind.START_FAILED, str(exc)))

    def _guest_stopped(self, stop: GuestStop) -> None:
        self.events.put(LifecycleEvent(EventKind.GUEST_STOPPED, stop.reason, stop.clean))

    def _connection_closed(self, reason: int) -> None:
        self.events.put(
            LifecycleEvent(EventKind.CONNECTION_LOST, f"Lost connection to libvirt (reason {reason})")
        )

    def _attach_console(self, domain) -> None:
        if self.console_factory is None:
            return
        console = self.console_factory(domain)
        console.attach()
        self._console = console

    def _detach_console(self) -> None:
        console, self._console = self._console, None
        if console is not None:
            console.detach()
