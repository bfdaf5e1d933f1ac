"""Environment-driven runtime settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional


logger = logging.getLogger("uvicorn.error")

_DB_PATH_ENV = "FRAGSTATS_DB_PATH"
_WEAPON_POLICY_ENV = "FRAGSTATS_WEAPON_POLICY"
_DEFAULT_RATING_ENV = "FRAGSTATS_DEFAULT_RATING"
_ONLINE_MINUTES_ENV = "FRAGSTATS_ONLINE_MINUTES"
_FEED_SIZE_ENV = "FRAGSTATS_FEED_SIZE"

DEFAULT_DB_PATH = Path("fragstats.sqlite")


class WeaponPolicy(str, Enum):
    """What to do when a kill references a weapon code the store does not know."""

    STRICT = "strict"
    LENIENT = "lenient"


def _env_float(env: Mapping[str, str], name: str, default: float, *, clamp_min: float | None = None) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    return value


def _env_int(env: Mapping[str, str], name: str, default: int, *, min_value: int | None = None) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_policy(env: Mapping[str, str], default: WeaponPolicy) -> WeaponPolicy:
    raw = env.get(_WEAPON_POLICY_ENV)
    if raw is None:
        return default
    try:
        return WeaponPolicy(raw.strip().lower())
    except ValueError:
        logger.warning("Invalid weapon policy %s; using %s", raw, default.value)
        return default


@dataclass(frozen=True)
class Settings:
    db_path: Path | str = DEFAULT_DB_PATH
    weapon_policy: WeaponPolicy = WeaponPolicy.LENIENT
    default_rating: float = 1000.0
    online_minutes: int = 5
    feed_size: int = 50

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        raw_db = env.get(_DB_PATH_ENV)
        if raw_db:
            db_path: Path | str = raw_db if raw_db.startswith("file:") else Path(raw_db)
        else:
            db_path = DEFAULT_DB_PATH
        return cls(
            db_path=db_path,
            weapon_policy=_env_policy(env, cls.weapon_policy),
            default_rating=_env_float(env, _DEFAULT_RATING_ENV, cls.default_rating, clamp_min=0.0),
            online_minutes=_env_int(env, _ONLINE_MINUTES_ENV, cls.online_minutes, min_value=1),
            feed_size=_env_int(env, _FEED_SIZE_ENV, cls.feed_size, min_value=1),
        )
