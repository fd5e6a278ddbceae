"""Serial link, protocol codec and machine state synchronization."""

from .auto_connect import DEFAULT_VENDOR_HINT, build_candidates, try_candidates
from .events import EventChannel
from .link_types import ConnectionInfo, DEFAULT_BAUDRATE, LinkError, LinkState, NotConnectedError, PortDescriptor
from .machine_sync import MachineSynchronizer
from .port_discovery import list_ports
from .protocol import Command, LineBuffer, RunState, StatusSnapshot, is_status_line, parse_status, split_key_values
from .serial_link import SerialLink, open_transport

__all__ = [
    "Command",
    "ConnectionInfo",
    "DEFAULT_BAUDRATE",
    "DEFAULT_VENDOR_HINT",
    "EventChannel",
    "LineBuffer",
    "LinkError",
    "LinkState",
    "MachineSynchronizer",
    "NotConnectedError",
    "PortDescriptor",
    "RunState",
    "SerialLink",
    "StatusSnapshot",
    "build_candidates",
    "is_status_line",
    "list_ports",
    "open_transport",
    "parse_status",
    "split_key_values",
    "try_candidates",
]
