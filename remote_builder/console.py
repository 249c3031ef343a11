"""Guest serial console wired to the process's stdin and stdout."""

from __future__ import annotations

import os
import sys
import termios
from typing import List, Optional

try:
    import libvirt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit(f"libvirt python bindings not available: {exc}")

from remote_builder.exceptions import ManagerError
from remote_builder.utils import log


def enter_raw_mode(fd: int) -> List:
    """Disable local echo, canonical input and CR-to-NL mapping on ``fd``.

    Returns the previous attributes for ``restore_terminal``.
    """
    attrs = termios.tcgetattr(fd)
    saved = list(attrs)
    attrs[0] &= ~termios.ICRNL
    attrs[3] &= ~(termios.ICANON | termios.ECHO)
    termios.tcsetattr(fd, termios.TCSANOW, attrs)
    return saved


def restore_terminal(fd: int, saved: List) -> None:
    termios.tcsetattr(fd, termios.TCSADRAIN, saved)


_STREAM_EVENTS = (
    libvirt.VIR_STREAM_EVENT_READABLE | libvirt.VIR_STREAM_EVENT_ERROR | libvirt.VIR_STREAM_EVENT_HANGUP
)


class SerialConsole:
    """Pump the guest console stream against stdin and stdout.

    Both callbacks run on the libvirt event thread. Raw mode is applied
    only when stdin is a terminal; pipes and files are wired unchanged.
    """

    BUFFER_SIZE = 1024

    def __init__(
        self,
        conn,
        domain,
        stdin_fd: Optional[int] = None,
        stdout_fd: Optional[int] = None,
    ) -> None:
        self.conn = conn
        self.domain = domain
        self.stdin_fd = sys.stdin.fileno() if stdin_fd is None else stdin_fd
        self.stdout_fd = sys.stdout.fileno() if stdout_fd is None else stdout_fd
        self._stream = None
        self._stdin_watch: Optional[int] = None
        self._saved_attrs: Optional[List] = None
        self._pending = b""
        self._awaiting_writable = False

    def attach(self) -> None:
        if os.isatty(self.stdin_fd):
            self._saved_attrs = enter_raw_mode(self.stdin_fd)
        else:
            log("DEBUG", "stdin is not a terminal; leaving its mode unchanged")
        try:
            self._stream = self.conn.newStream(libvirt.VIR_STREAM_NONBLOCK)
            self.domain.openConsole(None, self._stream, 0)
            self._stream.eventAddCallback(_STREAM_EVENTS, self._on_stream_event, None)
        except libvirt.libvirtError as exc:
            self.detach()
            raise ManagerError(f"Cannot attach to guest console: {exc}") from exc
        self._stdin_watch = libvirt.virEventAddHandle(
            self.stdin_fd, libvirt.VIR_EVENT_HANDLE_READABLE, self._on_stdin_event, None
        )
        log("DEBUG", "Guest console attached")

    def detach(self) -> None:
        if self._stdin_watch is not None:
            libvirt.virEventRemoveHandle(self._stdin_watch)
            self._stdin_watch = None
        self._close_stream()
        if self._saved_attrs is not None:
            restore_terminal(self.stdin_fd, self._saved_attrs)
            self._saved_attrs = None

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        self._pending = b""
        self._awaiting_writable = False
        if stream is None:
            return
        try:
            stream.eventRemoveCallback()
        except libvirt.libvirtError:
            log("DEBUG", "Console stream had no event callback")
        try:
            stream.finish()
        except libvirt.libvirtError:
            try:
                stream.abort()
            except libvirt.libvirtError as exc:
                log("DEBUG", f"Could not abort console stream: {exc}")

    def _on_stream_event(self, stream, events, _opaque) -> None:
        if events & (libvirt.VIR_STREAM_EVENT_ERROR | libvirt.VIR_STREAM_EVENT_HANGUP):
            log("DEBUG", "Guest console closed")
            self._close_stream()
            return
        if events & libvirt.VIR_STREAM_EVENT_WRITABLE:
            self._flush_pending(stream)
        if not events & libvirt.VIR_STREAM_EVENT_READABLE:
            return
        data = stream.recv(self.BUFFER_SIZE)
        if data == -2:  # EAGAIN
            return
        if not data:
            log("DEBUG", "Guest console reached end of stream")
            self._close_stream()
            return
        self._write_all(data)

    def _on_stdin_event(self, _watch, fd, _events, _opaque) -> None:
        data = os.read(fd, self.BUFFER_SIZE)
        if not data:
            libvirt.virEventRemoveHandle(self._stdin_watch)
            self._stdin_watch = None
            return
        stream = self._stream
        if stream is None:
            return
        self._pending += data
        self._flush_pending(stream)

    def _flush_pending(self, stream) -> None:
        """Send buffered input; on EAGAIN wait for the stream to become writable."""
        while self._pending:
            sent = stream.send(self._pending)
            if sent == -2:
                if not self._awaiting_writable:
                    stream.eventUpdateCallback(_STREAM_EVENTS | libvirt.VIR_STREAM_EVENT_WRITABLE)
                    self._awaiting_writable = True
                return
            self._pending = self._pending[sent:]
        if self._awaiting_writable:
            stream.eventUpdateCallback(_STREAM_EVENTS)
            self._awaiting_writable = False

    def _write_all(self, data: bytes) -> None:
        while data:
            written = os.write(self.stdout_fd, data)
            data = data[written:]
