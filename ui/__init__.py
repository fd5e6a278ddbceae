"""UI helper utilities."""

from .formatting import format_hhmmss, format_mmss

__all__ = ["format_hhmmss", "format_mmss"]
