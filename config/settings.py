"""Persisted serial preference (last port and baud rate)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .env import env_str

LOGGER = logging.getLogger("finisher.settings")
SETTINGS_FILENAME = "serial-settings.json"


def default_settings_dir() -> Path:
    """Return the application-private directory holding the preference file."""

    override = env_str("FINISHER_SETTINGS_DIR", "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".disc-finisher"


class LoadOutcome(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


@dataclass
class Preference:
    """Last successful connection; ``None`` fields mean "no preference"."""

    last_port: Optional[str] = None
    baud_rate: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Preference":
        port = data.get("last_port")
        baud = data.get("baud_rate")
        if not isinstance(port, str) or not port:
            port = None
        # bool is an int subclass; a JSON true is not a baud rate
        if isinstance(baud, bool) or not isinstance(baud, int) or baud <= 0:
            baud = None
        return cls(last_port=port, baud_rate=baud)

    def to_mapping(self) -> Dict[str, Any]:
        return {"last_port": self.last_port, "baud_rate": self.baud_rate}


class SettingsStore:
    """Best-effort JSON store; reads and writes never raise to the caller."""

    def __init__(self, path: Optional[Path] = None, *, logger: Optional[logging.Logger] = None) -> None:
        self._path = Path(path) if path is not None else default_settings_dir() / SETTINGS_FILENAME
        self._logger = logger or LOGGER

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Preference:
        """Return the stored preference, or an empty one when missing or corrupt."""

        outcome, preference = self._read()
        if outcome is not LoadOutcome.OK or preference is None:
            self._logger.debug("No usable preference at %s (%s)", self._path, outcome.value)
            return Preference()
        return preference

    def save(self, preference: Preference) -> bool:
        """Persist ``preference``; failures are logged and reported as ``False``."""

        path = self._path
        temporary = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with temporary.open("w", encoding="utf-8") as fh:
                json.dump(preference.to_mapping(), fh, indent=2, sort_keys=True)
                fh.write("\n")
            temporary.replace(path)
        except (OSError, TypeError, ValueError) as exc:
            self._logger.warning("Could not persist serial preference to %s: %s", path, exc)
            return False
        self._logger.debug("Saved serial preference %s", preference)
        return True

    def _read(self) -> Tuple[LoadOutcome, Optional[Preference]]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return LoadOutcome.NOT_FOUND, None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            self._logger.debug("Failed to read %s", self._path, exc_info=True)
            return LoadOutcome.INVALID, None
        if not isinstance(raw, dict):
            return LoadOutcome.INVALID, None
        return LoadOutcome.OK, Preference.from_mapping(raw)


__all__ = ["LoadOutcome", "Preference", "SETTINGS_FILENAME", "SettingsStore", "default_settings_dir"]
