"""Single serial connection to the finisher controller."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

import serial
from serial.serialutil import SerialException

from config.env import env_str
from config.settings import Preference, SettingsStore

from .auto_connect import DEFAULT_VENDOR_HINT, build_candidates, try_candidates
from .events import EventChannel
from .link_types import (
    DEFAULT_BAUDRATE,
    ConnectionInfo,
    LinkError,
    LinkState,
    NotConnectedError,
    PortDescriptor,
)
from .port_discovery import list_ports
from .protocol import LineBuffer, encode_line, is_status_line

LOGGER = logging.getLogger("finisher.link")
READ_TIMEOUT = 0.05
WRITE_TIMEOUT = 0.5
READER_JOIN_TIMEOUT = 1.0

TransportFactory = Callable[[str, int], "serial.SerialBase"]


def open_transport(port: str, baudrate: int) -> "serial.SerialBase":
    """Open ``port`` (a device path or any pyserial URL such as ``loop://``)."""

    return serial.serial_for_url(port, baudrate=baudrate, timeout=READ_TIMEOUT, write_timeout=WRITE_TIMEOUT)


class SerialLink:
    """Owns at most one open serial connection and publishes what it reads.

    ``connect`` and ``disconnect`` are serialized: a call made while another
    is in flight waits for it to settle and then acts on the resulting state,
    so a second ``connect`` returns the fresh connection and a ``disconnect``
    closes it. Writes go through a single-writer lock.
    """

    def __init__(
        self,
        store: Optional[SettingsStore] = None,
        *,
        transport_factory: TransportFactory = open_transport,
        discover: Callable[[], Sequence[PortDescriptor]] = list_ports,
        vendor_hint: Optional[str] = None,
        default_baudrate: int = DEFAULT_BAUDRATE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or LOGGER
        self._store = store
        self._transport_factory = transport_factory
        self._discover = discover
        self._vendor_hint = vendor_hint if vendor_hint is not None else env_str("FINISHER_VENDOR_HINT", DEFAULT_VENDOR_HINT)
        self._default_baudrate = default_baudrate

        self.lines: EventChannel[str] = EventChannel("serial.lines", self._logger)
        self.connection_changes: EventChannel[ConnectionInfo] = EventChannel("serial.connection", self._logger)

        self._op_lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._state = LinkState.DISCONNECTED
        self._handle: Optional["serial.SerialBase"] = None
        self._port: Optional[str] = None
        self._last_status: Optional[str] = None
        self._reader_thread: Optional[threading.Thread] = None
        self._reader_stop = threading.Event()

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> LinkState:
        with self._state_lock:
            return self._state

    def connection_info(self) -> ConnectionInfo:
        with self._state_lock:
            return self._info_locked()

    def last_status(self) -> Optional[str]:
        """Return the most recent ``STATUS`` line, if any has been received."""

        return self._last_status

    def list_ports(self) -> List[PortDescriptor]:
        return list(self._discover())

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    def connect(self, port: str, baudrate: Optional[int] = None) -> ConnectionInfo:
        """Open ``port``; a no-op returning current info when already connected."""

        if not port:
            raise LinkError("Port must be provided.")
        baud = int(baudrate or self._default_baudrate)

        with self._op_lock:
            with self._state_lock:
                if self._state is LinkState.CONNECTED:
                    self._logger.debug("Already connected to %s; ignoring connect(%s)", self._port, port)
                    return self._info_locked()
                self._state = LinkState.OPENING

            handle: Optional["serial.SerialBase"] = None
            try:
                handle = self._transport_factory(port, baud)
            except (SerialException, OSError, ValueError) as exc:
                raise LinkError(f"Could not open port {port}: {exc}") from exc
            finally:
                if handle is None:
                    with self._state_lock:
                        self._state = LinkState.DISCONNECTED

            with self._state_lock:
                self._handle = handle
                self._port = port
                self._state = LinkState.CONNECTED
                info = self._info_locked()
            self._logger.info("Serial connected to %s (baud=%s)", port, baud)

            if self._store is not None:
                self._store.save(Preference(last_port=port, baud_rate=baud))
            # the reader may report a loss, so it starts only after CONNECTED is published
            self.connection_changes.emit(info)
            with self._state_lock:
                still_active = self._handle is handle
            if still_active:
                self._start_reader(handle)
            return self.connection_info()

    def disconnect(self) -> ConnectionInfo:
        """Close the active connection and wait for the close to finish."""

        with self._op_lock:
            with self._state_lock:
                handle = self._handle
                if handle is None:
                    return self._info_locked()
            self._stop_reader()
            try:
                handle.close()
            except (SerialException, OSError):
                self._logger.exception("Error while closing serial handle")
            if self._mark_disconnected(handle):
                self._logger.info("Serial disconnected")
            return self.connection_info()

    def auto_connect(self) -> ConnectionInfo:
        """Try the saved port, vendor-hinted ports, then every port in turn."""

        preference = self._store.load() if self._store is not None else Preference()
        ports = self._discover()
        candidates = build_candidates(ports, preference, vendor_hint=self._vendor_hint)
        baud = preference.baud_rate or self._default_baudrate
        self._logger.info("Auto-connect candidates %s (baud=%s)", candidates, baud)
        try_candidates(self.connect, candidates, baud, logger=self._logger)
        return replace(self.connection_info(), auto=True)

    # ------------------------------------------------------------------ #
    # Output                                                             #
    # ------------------------------------------------------------------ #
    def send_line(self, text: str) -> None:
        """Write ``text`` plus a newline; no queueing and no acknowledgement."""

        with self._write_lock:
            with self._state_lock:
                handle = self._handle if self._state is LinkState.CONNECTED else None
            if handle is None or not handle.is_open:
                raise NotConnectedError("Serial not connected")
            try:
                payload = encode_line(text)
            except UnicodeEncodeError as exc:
                raise LinkError(f"Cannot send non-ASCII text {text!r}") from exc
            try:
                handle.write(payload)
                handle.flush()
            except (SerialException, OSError) as exc:
                raise LinkError(f"Failed to send {text!r}: {exc}") from exc
        self._logger.debug("-> %s", text)

    # -------------------- Internal helpers --------------------
    def _info_locked(self) -> ConnectionInfo:
        handle = self._handle
        connected = self._state is LinkState.CONNECTED and handle is not None and bool(handle.is_open)
        return ConnectionInfo(connected=connected, port=self._port if connected else None)

    def _start_reader(self, handle: "serial.SerialBase") -> None:
        stop = threading.Event()
        thread = threading.Thread(
            target=self._reader_loop,
            args=(handle, stop),
            name="FinisherSerialReader",
            daemon=True,
        )
        self._reader_stop = stop
        self._reader_thread = thread
        thread.start()

    def _stop_reader(self) -> None:
        thread = self._reader_thread
        self._reader_thread = None
        self._reader_stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=READER_JOIN_TIMEOUT)

    def _reader_loop(self, handle: "serial.SerialBase", stop: threading.Event) -> None:
        buffer = LineBuffer()
        while not stop.is_set():
            try:
                chunk = handle.read(handle.in_waiting or 1)
            except (SerialException, OSError) as exc:
                if stop.is_set():
                    break
                self._logger.error("Serial read failed: %s", exc)
                self._transport_lost(handle)
                return
            if stop.is_set():
                break
            for line in buffer.feed(chunk):
                self._dispatch_line(line)

    def _dispatch_line(self, line: str) -> None:
        self._logger.debug("<- %s", line)
        if is_status_line(line):
            self._last_status = line
        self.lines.emit(line)

    def _transport_lost(self, handle: "serial.SerialBase") -> None:
        try:
            handle.close()
        except (SerialException, OSError):
            self._logger.debug("Closing lost serial handle failed", exc_info=True)
        if self._mark_disconnected(handle):
            self._logger.warning("Serial connection lost")

    def _mark_disconnected(self, handle: "serial.SerialBase") -> bool:
        """Reset to DISCONNECTED if ``handle`` is still the active one.

        Returns ``True`` for the single caller that performed the transition
        and emitted the connection event.
        """

        with self._state_lock:
            if self._handle is not handle:
                return False
            self._handle = None
            self._port = None
            self._state = LinkState.DISCONNECTED
            info = self._info_locked()
        self.connection_changes.emit(info)
        return True


__all__ = ["READ_TIMEOUT", "SerialLink", "TransportFactory", "WRITE_TIMEOUT", "open_transport"]
