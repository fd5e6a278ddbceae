"""Data models for in-memory state."""

from .machine_state import DEFAULT_ABRASIVE_MS, MachineState

__all__ = ["DEFAULT_ABRASIVE_MS", "MachineState"]
