"""Environment variables for the finisher app, optionally seeded from a .env file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

_DOTENV_LOADED = False
_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def ensure_env_loaded(dotenv_path: Optional[Path] = None) -> None:
    """Read ``.env`` (project root first, then the working directory) once.

    Values already present in the process environment win.
    """

    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    _DOTENV_LOADED = True

    candidate = dotenv_path or Path(__file__).resolve().parent.parent / ".env"
    if candidate.is_file():
        load_dotenv(dotenv_path=candidate, override=False)
        return
    found = find_dotenv(usecwd=True)
    if found:
        load_dotenv(dotenv_path=found, override=False)


def _raw(name: str) -> Optional[str]:
    ensure_env_loaded()
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def env_str(name: str, default: str) -> str:
    value = _raw(name)
    return default if value is None else value


def env_bool(name: str, default: bool) -> bool:
    """Interpret 1/true/yes/on and 0/false/no/off; anything else gives ``default``."""

    value = _raw(name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return default


def env_int(name: str, default: int) -> int:
    value = _raw(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


__all__ = ["env_bool", "env_int", "env_str", "ensure_env_loaded"]
