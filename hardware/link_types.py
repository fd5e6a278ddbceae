"""Shared serial-link types and errors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_BAUDRATE = 115200


class LinkError(RuntimeError):
    """Raised when the serial transport cannot be opened or written."""


class NotConnectedError(LinkError):
    """Raised when a write is attempted without an open connection."""


class LinkState(Enum):
    DISCONNECTED = "disconnected"
    OPENING = "opening"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ConnectionInfo:
    """Snapshot of the link; ``auto`` marks results produced by auto-connect."""

    connected: bool
    port: Optional[str]
    auto: bool = False


@dataclass(frozen=True)
class PortDescriptor:
    """A serial port reported by the operating system."""

    device: str
    manufacturer: Optional[str] = None
    description: Optional[str] = None
    product: Optional[str] = None
    hwid: Optional[str] = None
    vid: Optional[int] = None
    pid: Optional[int] = None
    serial_number: Optional[str] = None


__all__ = [
    "ConnectionInfo",
    "DEFAULT_BAUDRATE",
    "LinkError",
    "LinkState",
    "NotConnectedError",
    "PortDescriptor",
]
