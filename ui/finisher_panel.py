"""Tk panel mirroring the finishing machine state."""

from __future__ import annotations

import logging
import threading
import tkinter as tk
from tkinter import ttk
from typing import Callable, Optional

from hardware.machine_sync import MachineSynchronizer
from hardware.serial_link import SerialLink

from .formatting import format_hhmmss, format_mmss

LOGGER = logging.getLogger("finisher.panel")
REFRESH_MS = 200


class FinisherPanel(ttk.Frame):
    """Speed/time spinners, run buttons and timers for one machine."""

    def __init__(self, master: tk.Misc, *, link: SerialLink, synchronizer: MachineSynchronizer) -> None:
        super().__init__(master, padding=8)
        self._link = link
        self._sync = synchronizer
        self._refresh_after_id: Optional[str] = None
        self._connecting = threading.Event()

        self.central_var = tk.StringVar(value="0")
        self.planet_var = tk.StringVar(value="0")
        self.time_var = tk.StringVar(value="0")
        self.main_timer_var = tk.StringVar(value="00:00")
        self.abrasive_var = tk.StringVar(value="00:00:00")
        self.status_var = tk.StringVar(value="Disconnected")

        for col in range(3):
            self.columnconfigure(col, weight=1)

        self._build_spinner(0, "Central RPM", self.central_var, "central")
        self._build_spinner(1, "Planet RPM", self.planet_var, "planet")
        self._build_spinner(2, "Time (min)", self.time_var, "time")

        timers = ttk.Frame(self)
        timers.grid(row=1, column=0, columnspan=3, sticky="ew", pady=(12, 4))
        timers.columnconfigure(0, weight=1)
        timers.columnconfigure(1, weight=1)
        ttk.Label(timers, textvariable=self.main_timer_var, font=("TkDefaultFont", 36)).grid(row=0, column=0)
        abrasive = ttk.LabelFrame(timers, text="Abrasive life")
        abrasive.grid(row=0, column=1)
        ttk.Label(abrasive, textvariable=self.abrasive_var, font=("TkDefaultFont", 18)).grid(padx=8, pady=4)

        buttons = ttk.Frame(self)
        buttons.grid(row=2, column=0, columnspan=3, sticky="ew", pady=4)
        for col in range(3):
            buttons.columnconfigure(col, weight=1)
        self.start_btn = ttk.Button(buttons, text="Start", command=self._guard(self._sync.start))
        self.start_btn.grid(row=0, column=0, sticky="ew", padx=4)
        ttk.Button(buttons, text="Stop", command=self._guard(self._sync.stop)).grid(row=0, column=1, sticky="ew", padx=4)
        self.sop_btn = ttk.Button(buttons, text="SOP", command=self._guard(self._sync.start_sop))
        self.sop_btn.grid(row=0, column=2, sticky="ew", padx=4)

        footer = ttk.Frame(self)
        footer.grid(row=3, column=0, columnspan=3, sticky="ew", pady=(8, 0))
        footer.columnconfigure(0, weight=1)
        ttk.Label(footer, textvariable=self.status_var, foreground="#555").grid(row=0, column=0, sticky="w")
        ttk.Button(footer, text="Reconnect", command=self.reconnect).grid(row=0, column=1, sticky="e")

        self._schedule_refresh()

    def _build_spinner(self, column: int, title: str, var: tk.StringVar, target: str) -> None:
        frame = ttk.LabelFrame(self, text=title)
        frame.grid(row=0, column=column, sticky="nsew", padx=4)
        frame.columnconfigure(1, weight=1)
        ttk.Button(frame, text="-", width=3, command=self._guard(lambda: self._sync.adjust(target, "down"))).grid(
            row=0, column=0, padx=4, pady=4
        )
        ttk.Label(frame, textvariable=var, anchor="center", font=("TkDefaultFont", 20)).grid(row=0, column=1, sticky="ew")
        ttk.Button(frame, text="+", width=3, command=self._guard(lambda: self._sync.adjust(target, "up"))).grid(
            row=0, column=2, padx=4, pady=4
        )

    def _guard(self, action: Callable[[], None]) -> Callable[[], None]:
        def _run() -> None:
            try:
                action()
            except Exception:
                LOGGER.exception("Panel action failed")
            self.refresh()

        return _run

    # ------------------------------------------------------------------ #
    # Connection                                                         #
    # ------------------------------------------------------------------ #
    def reconnect(self) -> None:
        """Drop the current connection and run auto-connect off the UI thread."""

        if self._connecting.is_set():
            return
        self._connecting.set()
        self.status_var.set("Connecting...")
        threading.Thread(target=self._reconnect_worker, name="FinisherReconnect", daemon=True).start()

    def _reconnect_worker(self) -> None:
        try:
            self._link.disconnect()
            info = self._link.auto_connect()
            LOGGER.info("Reconnect finished: %s", info)
        except Exception:
            LOGGER.exception("Reconnect failed")
        finally:
            self._connecting.clear()

    # ------------------------------------------------------------------ #
    # Rendering                                                          #
    # ------------------------------------------------------------------ #
    def refresh(self) -> None:
        state = self._sync.snapshot()
        self.central_var.set(str(state.central_rpm))
        self.planet_var.set(str(state.planet_rpm))
        self.time_var.set(str(state.time_mins))
        self.main_timer_var.set(format_mmss(state.countdown_ms))
        self.abrasive_var.set(format_hhmmss(state.abrasive_ms))
        run_state = ["disabled"] if state.running else ["!disabled"]
        self.start_btn.state(run_state)
        self.sop_btn.state(run_state)
        if not self._connecting.is_set():
            info = self._link.connection_info()
            self.status_var.set(f"Connected: {info.port}" if info.connected else "Disconnected")

    def _schedule_refresh(self) -> None:
        try:
            self.refresh()
        except tk.TclError:
            LOGGER.debug("Refresh skipped; widget destroyed", exc_info=True)
            return
        self._refresh_after_id = self.after(REFRESH_MS, self._schedule_refresh)

    def shutdown(self) -> None:
        if self._refresh_after_id is not None:
            try:
                self.after_cancel(self._refresh_after_id)
            except tk.TclError:
                pass
            self._refresh_after_id = None


__all__ = ["FinisherPanel"]
