"""UI-visible state of the finishing machine."""

from __future__ import annotations

from dataclasses import dataclass

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
DEFAULT_ABRASIVE_HOURS = 12
DEFAULT_ABRASIVE_MS = DEFAULT_ABRASIVE_HOURS * MS_PER_HOUR
RPM_STEP = 10
TIME_STEP_MINS = 1


@dataclass
class MachineState:
    """Speeds, run timers and connectivity mirrored for the operator."""

    central_rpm: int = 0
    planet_rpm: int = 0
    time_mins: int = 0
    running: bool = False
    countdown_ms: int = 0
    abrasive_ms: int = DEFAULT_ABRASIVE_MS
    connected: bool = False


__all__ = [
    "DEFAULT_ABRASIVE_HOURS",
    "DEFAULT_ABRASIVE_MS",
    "MS_PER_HOUR",
    "MS_PER_MINUTE",
    "MS_PER_SECOND",
    "MachineState",
    "RPM_STEP",
    "TIME_STEP_MINS",
]
