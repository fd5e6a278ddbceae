"""Project-wide configuration helpers."""

from .env import env_bool, env_int, env_str, ensure_env_loaded
from .settings import LoadOutcome, Preference, SettingsStore, default_settings_dir

__all__ = [
    "env_bool",
    "env_int",
    "env_str",
    "ensure_env_loaded",
    "LoadOutcome",
    "Preference",
    "SettingsStore",
    "default_settings_dir",
]
