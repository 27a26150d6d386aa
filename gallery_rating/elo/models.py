"""
Rating Model

Data contracts shared by the update engine, the scorers and the storage seam.
Nothing here computes ratings; construction only validates.
"""

import math
import numbers
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping

from gallery_rating.config import DEFAULT_CONFIG, RatingConfig


class InvalidEntityState(ValueError):
    """Raised when an entity snapshot is malformed or a comparison is ill-formed."""
    pass


class RatingTier(str, Enum):
    LEGENDARY = "LEGENDARY"
    ELITE = "ELITE"
    EXPERT = "EXPERT"
    ADVANCED = "ADVANCED"
    INTERMEDIATE = "INTERMEDIATE"
    NOVICE = "NOVICE"
    BEGINNER = "BEGINNER"


def _check_count(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidEntityState(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidEntityState(f"{name} must be non-negative, got {value}")


def _check_rating(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidEntityState(f"rating must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidEntityState(f"rating must be finite, got {value}")


def _is_missing(value: Any) -> bool:
    # pandas reads empty CSV cells as NaN
    return value is None or (isinstance(value, float) and math.isnan(value))


def check_bounds(entity: "RatedEntity", config: RatingConfig = DEFAULT_CONFIG) -> None:
    """Reject an entity whose rating lies outside the configured floor/ceiling."""
    if not config.rating_floor <= entity.rating <= config.rating_ceiling:
        raise InvalidEntityState(
            f"rating {entity.rating} of {entity.entity_id or 'entity'} outside "
            f"[{config.rating_floor}, {config.rating_ceiling}]"
        )


@dataclass(frozen=True)
class RatedEntity:
    """
    Snapshot of anything that can win or lose a comparison.

    Field types and counts are validated on construction; rating bounds depend
    on the active RatingConfig and are checked by whoever consumes the entity.
    A brand-new entity is created with ``RatedEntity.new`` rather than by
    leaving fields empty.
    """

    rating: float
    wins: int
    losses: int
    entity_id: str | None = None
    owner_id: str | None = None

    def __post_init__(self):
        _check_rating(self.rating)
        _check_count("wins", self.wins)
        _check_count("losses", self.losses)

    @classmethod
    def new(cls, entity_id: str | None = None, owner_id: str | None = None,
            config: RatingConfig = DEFAULT_CONFIG) -> "RatedEntity":
        """Create an entity that has never been compared."""
        return cls(rating=config.base_rating, wins=0, losses=0,
                   entity_id=entity_id, owner_id=owner_id)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RatedEntity":
        """
        Build an entity from a stored record.

        ``rating``, ``wins`` and ``losses`` are required. Missing or null
        values raise InvalidEntityState instead of being defaulted, since an
        unrated entity and a corrupted one must stay distinguishable.
        """
        missing = [key for key in ("rating", "wins", "losses") if _is_missing(record.get(key))]
        if missing:
            raise InvalidEntityState(f"Record is missing required fields: {', '.join(missing)}")

        wins, losses = record["wins"], record["losses"]
        # CSV/pandas hand back integral floats (3.0) for count columns
        if isinstance(wins, float) and wins.is_integer():
            wins = int(wins)
        if isinstance(losses, float) and losses.is_integer():
            losses = int(losses)

        entity_id = record.get("entity_id")
        owner_id = record.get("owner_id")
        entity_id = None if _is_missing(entity_id) else entity_id
        owner_id = None if _is_missing(owner_id) else owner_id
        return cls(
            rating=record["rating"],
            wins=wins,
            losses=losses,
            entity_id=None if entity_id is None else str(entity_id),
            owner_id=None if owner_id is None else str(owner_id),
        )

    @property
    def match_count(self) -> int:
        return self.wins + self.losses

    @property
    def is_rated(self) -> bool:
        return self.match_count > 0

    @property
    def win_rate(self) -> float:
        return self.wins / self.match_count if self.match_count else 0.0

    def with_result(self, rating: float, won: bool) -> "RatedEntity":
        """Return the post-match state."""
        if won:
            return replace(self, rating=rating, wins=self.wins + 1)
        return replace(self, rating=rating, losses=self.losses + 1)

    def to_record(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "owner_id": self.owner_id,
            "rating": self.rating,
            "wins": self.wins,
            "losses": self.losses,
        }


@dataclass(frozen=True)
class MatchMeta:
    """Analytics produced alongside a rating update. Not needed for correctness."""

    expected_winner_score: float
    upset_multiplier: float
    winner_rd: float
    loser_rd: float
    upset: bool
    winner_k: float
    loser_k: float
    winner_delta: float
    loser_delta: float


@dataclass(frozen=True)
class MatchResult:
    winner: RatedEntity
    loser: RatedEntity
    meta: MatchMeta

    def __iter__(self):
        # Allows `new_winner, new_loser, meta = engine.apply_result(...)`
        return iter((self.winner, self.loser, self.meta))


@dataclass(frozen=True)
class CompositeScore:
    """Derived score of an owner (gallery) from its best rated members."""

    score: int
    avg_rating: float
    confidence: float
    top_rating: float
    images_used: int
    total_wins: int
    total_losses: int
    win_rate: float
    wilson_score: float

    @property
    def total_matches(self) -> int:
        return self.total_wins + self.total_losses
