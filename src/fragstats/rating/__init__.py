"""Skill rating engine."""

from .skill import (
    DEFAULT_RATING,
    DEFAULT_WEAPON_MODIFIER,
    HEADSHOT_BONUS,
    K_FACTOR,
    MIN_RATING,
    RatingChange,
    check_weapon_modifier,
    compute_killer_rating,
    compute_victim_rating,
    expected_score,
    rate_kill,
)

__all__ = [
    "DEFAULT_RATING",
    "DEFAULT_WEAPON_MODIFIER",
    "HEADSHOT_BONUS",
    "K_FACTOR",
    "MIN_RATING",
    "RatingChange",
    "check_weapon_modifier",
    "compute_killer_rating",
    "compute_victim_rating",
    "expected_score",
    "rate_kill",
]
