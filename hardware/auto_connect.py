"""Candidate ordering and trial loop used to find the finisher controller."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from config.settings import Preference

from .link_types import LinkError, PortDescriptor

LOGGER = logging.getLogger("finisher.autoconnect")
DEFAULT_VENDOR_HINT = "arduino"


def dedupe_preserve(values: Iterable[Optional[str]]) -> List[str]:
    """Return non-empty values in original order with duplicates removed."""

    seen: set[str] = set()
    result: List[str] = []
    for item in values:
        if not item or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def matches_vendor(port: PortDescriptor, hint: str) -> bool:
    needle = hint.lower()
    if not needle:
        return False
    for field in (port.manufacturer, port.description):
        if field and needle in field.lower():
            return True
    return False


def build_candidates(
    ports: Sequence[PortDescriptor],
    preference: Preference,
    *,
    vendor_hint: str = DEFAULT_VENDOR_HINT,
) -> List[str]:
    """Saved port first, then vendor-hinted ports, then everything else."""

    ordered: List[Optional[str]] = [preference.last_port]
    ordered.extend(p.device for p in ports if matches_vendor(p, vendor_hint))
    ordered.extend(p.device for p in ports)
    return dedupe_preserve(ordered)


def try_candidates(
    connect: Callable[[str, int], object],
    candidates: Iterable[str],
    baudrate: int,
    *,
    logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Call ``connect`` on each candidate until one succeeds.

    Only ``LinkError`` is tolerated; the returned value is the port that
    connected, or ``None`` once every candidate has failed.
    """

    log = logger or LOGGER
    for port in candidates:
        try:
            connect(port, baudrate)
        except LinkError as exc:
            log.info("Auto-connect: %s failed (%s)", port, exc)
            continue
        log.info("Auto-connect: connected to %s", port)
        return port
    log.info("Auto-connect: no candidate port could be opened")
    return None


__all__ = ["DEFAULT_VENDOR_HINT", "build_candidates", "dedupe_preserve", "matches_vendor", "try_candidates"]
