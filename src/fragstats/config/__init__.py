"""Configuration helpers for runtime settings."""

from .settings import DEFAULT_DB_PATH, Settings, WeaponPolicy

__all__ = [
    "DEFAULT_DB_PATH",
    "Settings",
    "WeaponPolicy",
]
