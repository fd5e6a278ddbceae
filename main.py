"""Control panel for the centrifugal disc finishing machine."""

from __future__ import annotations

import logging
import sys
import threading
import tkinter as tk
from typing import Optional

from config.env import env_bool, env_int, env_str
from config.settings import SettingsStore
from hardware.link_types import DEFAULT_BAUDRATE
from hardware.machine_sync import MachineSynchronizer
from hardware.serial_link import SerialLink
from models.machine_state import DEFAULT_ABRASIVE_HOURS, MS_PER_HOUR
from ui.finisher_panel import FinisherPanel

LOGGER = logging.getLogger("finisher.app")


def _configure_logging() -> None:
    """Initialise the root logger once so child modules inherit the formatter."""

    if logging.getLogger().handlers:
        return
    level_name = env_str("FINISHER_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    LOGGER.debug("Root logging configured (level=%s)", level_name)


class FinisherApp(tk.Tk):
    """Top-level window owning the serial link and the machine synchronizer."""

    def __init__(self, *, auto_connect: Optional[bool] = None) -> None:
        _configure_logging()
        LOGGER.info("Creating FinisherApp root window")
        super().__init__()
        self.title("Disc Finisher")
        self.geometry("800x480")
        self.resizable(False, False)
        self.columnconfigure(0, weight=1)
        self.rowconfigure(0, weight=1)

        self.link = SerialLink(
            SettingsStore(),
            default_baudrate=env_int("FINISHER_DEFAULT_BAUD", DEFAULT_BAUDRATE),
        )
        abrasive_hours = env_int("FINISHER_ABRASIVE_HOURS", DEFAULT_ABRASIVE_HOURS)
        self.synchronizer = MachineSynchronizer(self.link, abrasive_ms=abrasive_hours * MS_PER_HOUR)
        self.synchronizer.attach()
        self.synchronizer.start_ticking()

        self.panel = FinisherPanel(self, link=self.link, synchronizer=self.synchronizer)
        self.panel.grid(row=0, column=0, sticky="nsew")

        self.protocol("WM_DELETE_WINDOW", self.on_close)

        if auto_connect is None:
            auto_connect = env_bool("FINISHER_AUTO_CONNECT", True)
        if auto_connect:
            threading.Thread(target=self._auto_connect, name="FinisherAutoConnect", daemon=True).start()

    def _auto_connect(self) -> None:
        try:
            info = self.link.auto_connect()
        except Exception:
            LOGGER.exception("Auto-connect failed")
            return
        LOGGER.info("Auto-connect result: %s", info)

    def on_close(self) -> None:
        """Stop timers and close the serial port before destroying the window."""

        LOGGER.info("Main window closing requested")
        self.panel.shutdown()
        self.synchronizer.stop_ticking()
        self.synchronizer.detach()
        try:
            self.link.disconnect()
        except Exception:
            LOGGER.exception("Error while disconnecting serial link")
        LOGGER.info("Destroying root window")
        self.destroy()


def main() -> None:
    """Entrypoint used by both CLI execution and packaging scripts."""

    LOGGER.info("Starting finisher application")
    app = FinisherApp()
    app.mainloop()
    LOGGER.info("Application closed")


if __name__ == "__main__":
    main()
