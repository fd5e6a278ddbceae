"""Timer text helpers for the finisher panel."""

from __future__ import annotations


def _whole_seconds(ms: int) -> int:
    return max(0, int(ms) // 1000)


def format_mmss(ms: int) -> str:
    """Format a countdown as ``MM:SS``; minutes are not wrapped at 60."""

    total = _whole_seconds(ms)
    return f"{total // 60:02d}:{total % 60:02d}"


def format_hhmmss(ms: int) -> str:
    total = _whole_seconds(ms)
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


__all__ = ["format_hhmmss", "format_mmss"]
