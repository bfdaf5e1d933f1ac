"""ELO-style skill rating updates applied to each kill."""

from __future__ import annotations

import logging
from dataclasses import dataclass


logger = logging.getLogger(__name__)

K_FACTOR = 32
HEADSHOT_BONUS = 1.25
MIN_RATING = 0.0
DEFAULT_RATING = 1000.0
DEFAULT_WEAPON_MODIFIER = 1.0


def expected_score(rating: float, opponent_rating: float) -> float:
    """Probability that a player rated ``rating`` beats ``opponent_rating``."""

    return 1 / (1 + 10 ** ((opponent_rating - rating) / 400))


def compute_killer_rating(
    killer_rating: float,
    victim_rating: float,
    weapon_modifier: float,
    headshot: bool = False,
) -> float:
    delta = K_FACTOR * (1 - expected_score(killer_rating, victim_rating))
    delta *= weapon_modifier
    if headshot:
        delta *= HEADSHOT_BONUS
    return max(killer_rating + delta, MIN_RATING)


def compute_victim_rating(victim_rating: float, killer_rating: float) -> float:
    delta = K_FACTOR * (0 - expected_score(victim_rating, killer_rating))
    return max(victim_rating + delta, MIN_RATING)


def check_weapon_modifier(code: str, modifier: float) -> float:
    """Return ``modifier`` unchanged, warning when it would turn kills into losses."""

    if modifier < 0:
        logger.warning("Weapon %s has negative modifier %.2f; kills with it lower the killer's rating", code, modifier)
    return modifier


@dataclass(frozen=True)
class RatingChange:
    killer_before: float
    killer_after: float
    victim_before: float
    victim_after: float

    @property
    def killer_delta(self) -> float:
        return self.killer_after - self.killer_before

    @property
    def victim_delta(self) -> float:
        return self.victim_after - self.victim_before


def rate_kill(
    killer_rating: float,
    victim_rating: float,
    *,
    weapon_modifier: float = DEFAULT_WEAPON_MODIFIER,
    headshot: bool = False,
) -> RatingChange:
    """Compute both post-kill ratings from the pre-kill values."""

    return RatingChange(
        killer_before=killer_rating,
        killer_after=compute_killer_rating(killer_rating, victim_rating, weapon_modifier, headshot),
        victim_before=victim_rating,
        victim_after=compute_victim_rating(victim_rating, killer_rating),
    )
