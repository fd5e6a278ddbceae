"""Line codec for the finisher controller's text protocol.

Inbound traffic is newline-delimited ASCII. Telemetry lines look like::

    STATUS centralRPM=120 planetRPM=45 state=RUNNING

Every other non-empty line is opaque device output. Outbound commands are
fixed upper-case tokens with no arguments and no acknowledgement.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Literal, Optional

STATUS_PREFIX = "STATUS "
LINE_TERMINATOR = "\n"
CENTRAL_RPM_KEY = "centralRPM"
PLANET_RPM_KEY = "planetRPM"
STATE_KEY = "state"
IDLE_STATES = frozenset({"STOPPED", "IDLE"})

SpeedTarget = Literal["central", "planet"]
Direction = Literal["up", "down"]


class RunState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class Command(str, Enum):
    START = "START"
    STOP = "STOP"
    SOP = "SOP"
    CENTRAL_UP = "C UP"
    CENTRAL_DOWN = "C DOWN"
    PLANET_UP = "P UP"
    PLANET_DOWN = "P DOWN"


_SPEED_COMMANDS = {
    ("central", "up"): Command.CENTRAL_UP,
    ("central", "down"): Command.CENTRAL_DOWN,
    ("planet", "up"): Command.PLANET_UP,
    ("planet", "down"): Command.PLANET_DOWN,
}


@dataclass(frozen=True)
class StatusSnapshot:
    """Decoded telemetry; ``None`` means the line did not carry that field."""

    central_rpm: Optional[float] = None
    planet_rpm: Optional[float] = None
    run_state: Optional[RunState] = None


class LineBuffer:
    """Accumulates raw bytes and yields complete, trimmed, non-empty lines."""

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, data: bytes) -> List[str]:
        if not data:
            return []
        self._pending.extend(data)
        *complete, rest = self._pending.split(b"\n")
        self._pending = bytearray(rest)
        lines = []
        for raw in complete:
            text = raw.decode("ascii", errors="ignore").strip()
            if text:
                lines.append(text)
        return lines

    def reset(self) -> None:
        self._pending.clear()


def is_status_line(line: str) -> bool:
    return line.startswith(STATUS_PREFIX)


def split_key_values(text: str) -> Dict[str, str]:
    """Split ``k=v`` tokens on single spaces; tokens without ``=`` are skipped."""

    pairs: Dict[str, str] = {}
    for token in text.split(" "):
        key, sep, value = token.partition("=")
        if not sep:
            continue
        pairs[key] = value
    return pairs


def _parse_number(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_run_state(raw: str) -> RunState:
    return RunState.STOPPED if raw.upper() in IDLE_STATES else RunState.RUNNING


def parse_status(line: str) -> Optional[StatusSnapshot]:
    """Decode a ``STATUS`` line; returns ``None`` for any other line."""

    if not is_status_line(line):
        return None
    fields = split_key_values(line[len(STATUS_PREFIX):])
    state = fields.get(STATE_KEY)
    return StatusSnapshot(
        central_rpm=_parse_number(fields.get(CENTRAL_RPM_KEY)),
        planet_rpm=_parse_number(fields.get(PLANET_RPM_KEY)),
        run_state=parse_run_state(state) if state else None,
    )


def speed_command(target: str, direction: str) -> Command:
    try:
        return _SPEED_COMMANDS[(target, direction)]
    except KeyError:
        raise ValueError(f"No speed command for target={target!r} direction={direction!r}") from None


def encode_line(text: str) -> bytes:
    return f"{text}{LINE_TERMINATOR}".encode("ascii")


__all__ = [
    "Command",
    "Direction",
    "IDLE_STATES",
    "LineBuffer",
    "RunState",
    "STATUS_PREFIX",
    "SpeedTarget",
    "StatusSnapshot",
    "encode_line",
    "is_status_line",
    "parse_run_state",
    "parse_status",
    "speed_command",
    "split_key_values",
]
