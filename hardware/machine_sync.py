"""Reconciles device telemetry with operator actions and local run timers."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Protocol

from models.machine_state import (
    DEFAULT_ABRASIVE_MS,
    MS_PER_MINUTE,
    MS_PER_SECOND,
    RPM_STEP,
    TIME_STEP_MINS,
    MachineState,
)

from .events import EventChannel
from .link_types import ConnectionInfo, LinkError
from .protocol import Command, Direction, RunState, SpeedTarget, StatusSnapshot, parse_status, speed_command

LOGGER = logging.getLogger("finisher.sync")
TICK_INTERVAL = 1.0


class CommandLink(Protocol):
    """The part of ``SerialLink`` the synchronizer depends on."""

    lines: EventChannel[str]
    connection_changes: EventChannel[ConnectionInfo]

    def send_line(self, text: str) -> None: ...
    def connection_info(self) -> ConnectionInfo: ...


def _direction_step(direction: str) -> int:
    value = (direction or "").lower()
    if value == "up":
        return 1
    if value == "down":
        return -1
    raise ValueError(f"Unsupported direction '{direction}'. Expected 'up' or 'down'.")


def _round_rpm(value: float) -> int:
    # half-up, not round()'s half-to-even
    return max(0, int(math.floor(value + 0.5)))


class MachineSynchronizer:
    """Owns the single ``MachineState`` and turns operator actions into commands.

    Every mutation happens under an internal lock and is followed by a
    ``changes`` event carrying a copy of the state. Commands are sent after
    the lock is released; delivery failures are logged and otherwise ignored
    so the panel keeps working without a controller attached.
    """

    def __init__(
        self,
        link: Optional[CommandLink] = None,
        *,
        abrasive_ms: int = DEFAULT_ABRASIVE_MS,
        tick_interval: float = TICK_INTERVAL,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or LOGGER
        self._link = link
        self._state = MachineState(abrasive_ms=max(0, int(abrasive_ms)))
        self._lock = threading.Lock()
        self._last_command: Optional[Command] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._tick_interval = max(0.01, float(tick_interval))
        self._tick_thread: Optional[threading.Thread] = None
        self._tick_stop = threading.Event()
        self.changes: EventChannel[MachineState] = EventChannel("machine.changes", self._logger)

    # ------------------------------------------------------------------ #
    # Wiring                                                             #
    # ------------------------------------------------------------------ #
    def attach(self) -> None:
        """Subscribe to the link's line and connection events."""

        if self._link is None or self._unsubscribers:
            return
        self._unsubscribers = [
            self._link.lines.subscribe(self.on_line),
            self._link.connection_changes.subscribe(self.on_connection_change),
        ]
        self.on_connection_change(self._link.connection_info())

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def snapshot(self) -> MachineState:
        with self._lock:
            return replace(self._state)

    @property
    def last_command(self) -> Optional[Command]:
        return self._last_command

    # ------------------------------------------------------------------ #
    # Operator actions                                                   #
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        self._begin_run(Command.START)

    def start_sop(self) -> None:
        self._begin_run(Command.SOP)

    def stop(self) -> None:
        with self._lock:
            self._state.running = False
            self._state.countdown_ms = 0
        self._logger.info("Run stopped")
        self._send(Command.STOP)
        self._notify()

    def adjust_speed(self, target: SpeedTarget, direction: Direction) -> None:
        """Step the central or planet speed by ten RPM, never below zero."""

        delta = _direction_step(direction) * RPM_STEP
        command = speed_command(target, direction.lower())
        with self._lock:
            if target == "central":
                self._state.central_rpm = max(0, self._state.central_rpm + delta)
            else:
                self._state.planet_rpm = max(0, self._state.planet_rpm + delta)
        self._send(command)
        self._notify()

    def adjust_time(self, direction: Direction) -> None:
        delta = _direction_step(direction) * TIME_STEP_MINS
        with self._lock:
            self._state.time_mins = max(0, self._state.time_mins + delta)
        self._notify()

    def adjust(self, target: str, direction: str) -> None:
        if target == "time":
            self.adjust_time(direction)
        else:
            self.adjust_speed(target, direction)

    # ------------------------------------------------------------------ #
    # Timer                                                              #
    # ------------------------------------------------------------------ #
    def tick(self) -> None:
        """Advance the run timers by one second; stops the run at zero."""

        with self._lock:
            state = self._state
            if not state.running or state.countdown_ms <= 0:
                return
            state.countdown_ms = max(0, state.countdown_ms - MS_PER_SECOND)
            state.abrasive_ms = max(0, state.abrasive_ms - MS_PER_SECOND)
            expired = state.countdown_ms == 0
            if expired:
                state.running = False
        if expired:
            self._logger.info("Countdown finished; run stopped")
            self._send(Command.STOP)
        self._notify()

    def start_ticking(self) -> None:
        if self._tick_thread is not None and self._tick_thread.is_alive():
            return
        self._tick_stop = threading.Event()
        thread = threading.Thread(target=self._tick_loop, args=(self._tick_stop,), name="FinisherTick", daemon=True)
        self._tick_thread = thread
        thread.start()

    def stop_ticking(self) -> None:
        self._tick_stop.set()
        thread = self._tick_thread
        self._tick_thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2 * self._tick_interval)

    def _tick_loop(self, stop: threading.Event) -> None:
        while not stop.wait(self._tick_interval):
            try:
                self.tick()
            except Exception:
                self._logger.exception("Timer tick failed")

    # ------------------------------------------------------------------ #
    # Inbound events                                                     #
    # ------------------------------------------------------------------ #
    def on_line(self, line: str) -> None:
        snapshot = parse_status(line)
        if snapshot is None:
            self._logger.debug("Device: %s", line)
            return
        self.apply_status(snapshot)

    def apply_status(self, snapshot: StatusSnapshot) -> None:
        with self._lock:
            if snapshot.central_rpm is not None:
                self._state.central_rpm = _round_rpm(snapshot.central_rpm)
            if snapshot.planet_rpm is not None:
                self._state.planet_rpm = _round_rpm(snapshot.planet_rpm)
            if snapshot.run_state is not None:
                self._state.running = snapshot.run_state is RunState.RUNNING
        self._notify()

    def on_connection_change(self, info: ConnectionInfo) -> None:
        with self._lock:
            self._state.connected = bool(info.connected)
        self._notify()

    # -------------------- Internal helpers --------------------
    def _begin_run(self, command: Command) -> None:
        with self._lock:
            self._state.running = True
            self._state.countdown_ms = self._state.time_mins * MS_PER_MINUTE
            countdown = self._state.countdown_ms
        self._logger.info("Run started (%s, countdown=%d ms)", command.value, countdown)
        self._send(command)
        self._notify()

    def _send(self, command: Command) -> None:
        self._last_command = command
        if self._link is None:
            self._logger.debug("No link attached; %s not sent", command.value)
            return
        try:
            self._link.send_line(command.value)
        except LinkError as exc:
            self._logger.debug("Command %s not delivered: %s", command.value, exc)

    def _notify(self) -> None:
        self.changes.emit(self.snapshot())


__all__ = ["CommandLink", "MachineSynchronizer", "TICK_INTERVAL"]
