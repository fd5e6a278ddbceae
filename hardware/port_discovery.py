"""Serial port enumeration."""

from __future__ import annotations

import logging
from typing import List

from serial.tools import list_ports as _list_ports

from .link_types import PortDescriptor

LOGGER = logging.getLogger("finisher.ports")


def list_ports() -> List[PortDescriptor]:
    """Enumerate serial ports afresh; enumeration errors propagate."""

    ports = [
        PortDescriptor(
            device=info.device,
            manufacturer=info.manufacturer or None,
            description=info.description or None,
            product=info.product or None,
            hwid=info.hwid or None,
            vid=info.vid,
            pid=info.pid,
            serial_number=info.serial_number or None,
        )
        for info in _list_ports.comports()
    ]
    LOGGER.debug("Discovered %d serial port(s): %s", len(ports), [p.device for p in ports])
    return ports


__all__ = ["list_ports"]
