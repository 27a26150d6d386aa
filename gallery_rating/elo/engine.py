"""
Pairwise Rating Engine

This module turns the outcome of a single comparison ("A beat B") into new
ratings for both images. It supports:
- Rating deviation that shrinks as an image accumulates matches
- Uncertainty-aware expected score (wider curve for uncertain pairs)
- Dynamic K-factor based on match count, uncertainty and rating zone
- Upset and streak multipliers
- Minimum movement, provisional boost and anti-clustering corrections
- Hard floor/ceiling clamping with honest reported deltas

The engine is a pure function of its inputs: it holds no state beyond its
immutable RatingConfig and never logs or persists anything.

Usage:
    from gallery_rating.elo import RatingEngine
    new_winner, new_loser, meta = RatingEngine().apply_result(winner, loser)
"""

import math

from gallery_rating.config import DEFAULT_CONFIG, RatingConfig
from gallery_rating.elo.models import (
    InvalidEntityState,
    MatchMeta,
    MatchResult,
    RatedEntity,
    RatingTier,
    check_bounds,
)
from gallery_rating.utils import clamp, round_half_up


class RatingEngine:
    """Stateless rating update engine bound to one RatingConfig."""

    def __init__(self, config: RatingConfig = DEFAULT_CONFIG):
        self.config = config

    def __repr__(self):
        return f"RatingEngine(config={self.config!r})"

    # --- Uncertainty ---
    def rating_deviation(self, match_count: int) -> float:
        """RD = clamp(RD_INITIAL - matches * decay, RD_MIN, RD_MAX)."""
        cfg = self.config
        return clamp(
            cfg.rd_initial - match_count * cfg.rd_decay_per_match,
            cfg.rd_min,
            cfg.rd_max,
        )

    # --- Expected score ---
    def expected_score(self, rating_a: float, rating_b: float,
                       rd_a: float = 0.0, rd_b: float = 0.0) -> float:
        """
        Probability that A beats B.

        Combined uncertainty widens the logistic scale, flattening the curve.
        With both RDs at zero this is the classic 400-point Elo curve.
        """
        scale = 400 * (1 + math.sqrt(rd_a ** 2 + rd_b ** 2) / 1000)
        return 1 / (1 + 10 ** ((rating_b - rating_a) / scale))

    def match_quality(self, rating_a: float, rating_b: float,
                      rd_a: float = 0.0, rd_b: float = 0.0) -> float:
        """How balanced a pairing is: 1.0 for a coin flip, toward 0 for a mismatch."""
        expected = self.expected_score(rating_a, rating_b, rd_a, rd_b)
        return 1 - 2 * abs(expected - 0.5)

    # --- K-factor ---
    def base_k(self, match_count: int) -> float:
        for matches_below, k in self.config.k_tiers:
            if match_count < matches_below:
                return k
        return self.config.k_established

    def uncertainty_multiplier(self, rd: float) -> float:
        cfg = self.config
        return 1 + (rd - cfg.rd_min) / (cfg.rd_initial - cfg.rd_min) * cfg.k_uncertainty_weight

    def zone_multiplier(self, rating: float) -> float:
        """Dampen movement at the top of the ladder and near the floor."""
        for threshold, multiplier in self.config.k_high_zones:
            if rating > threshold:
                return multiplier
        low_threshold, low_multiplier = self.config.k_low_zone
        if rating < low_threshold:
            return low_multiplier
        return 1.0

    def get_dynamic_k(self, entity: RatedEntity) -> float:
        """Base K for the entity's tier, scaled by uncertainty and rating zone."""
        rd = self.rating_deviation(entity.match_count)
        return (
            self.base_k(entity.match_count)
            * self.uncertainty_multiplier(rd)
            * self.zone_multiplier(entity.rating)
        )

    # --- Surprise & momentum ---
    def upset_multiplier(self, expected: float) -> float:
        """
        Shrink K when the favourite wins, grow it when the underdog wins.

        A maximal upset (expected -> 0) approaches 1.5x; a certain favourite
        bottoms out at upset_favorite_floor.
        """
        cfg = self.config
        if expected >= 0.5:
            return max(cfg.upset_favorite_floor, 1 - cfg.upset_favorite_shrink * (expected - 0.5))
        return 1 + (0.5 - expected)

    def streak_multiplier(self, entity: RatedEntity) -> float:
        """Momentum from the pre-match record; at most 1.05x at a perfect or winless record."""
        cfg = self.config
        if entity.match_count < cfg.streak_min_matches:
            return 1.0
        win_rate = entity.win_rate
        if win_rate > cfg.streak_high_win_rate:
            return 1 + (win_rate - cfg.streak_high_win_rate) * cfg.streak_weight
        if win_rate < cfg.streak_low_win_rate:
            return 1 + (cfg.streak_low_win_rate - win_rate) * cfg.streak_weight
        return 1.0

    # --- Corrections ---
    def provisional_boost(self, winner: RatedEntity, loser: RatedEntity, expected: float) -> int:
        """Extra reward for a newcomer beating an established image."""
        cfg = self.config
        if winner.match_count < cfg.provisional_matches <= loser.match_count:
            return round_half_up(cfg.provisional_boost * (1 - expected))
        return 0

    def cluster_push(self, winner_rating: float, loser_rating: float) -> int:
        """Separation applied when two ratings are closer than cluster_distance."""
        cfg = self.config
        diff = abs(winner_rating - loser_rating)
        if diff < cfg.cluster_distance:
            return round_half_up((cfg.cluster_distance - diff) / cfg.cluster_push_divisor)
        return 0

    def clamp_rating(self, rating: float) -> float:
        return clamp(rating, self.config.rating_floor, self.config.rating_ceiling)

    # --- Validation ---
    def validate_pair(self, winner, loser) -> None:
        for role, entity in (("winner", winner), ("loser", loser)):
            if not isinstance(entity, RatedEntity):
                raise InvalidEntityState(
                    f"{role} must be a RatedEntity, got {type(entity).__name__}"
                )
            check_bounds(entity, self.config)
        if winner is loser or (winner.entity_id and winner.entity_id == loser.entity_id):
            raise InvalidEntityState(
                f"winner and loser must be distinct entities (got {winner.entity_id!r} twice)"
            )

    # --- Update ---
    def apply_result(self, winner: RatedEntity, loser: RatedEntity) -> MatchResult:
        """
        Compute post-match state for both entities.

        Args:
            winner: Snapshot of the entity that won the comparison
            loser: Snapshot of the entity that lost

        Returns:
            MatchResult(winner, loser, meta); unpacks as a 3-tuple

        Raises:
            InvalidEntityState: malformed snapshot, out-of-range rating, or
                winner and loser being the same entity
        """
        self.validate_pair(winner, loser)
        cfg = self.config

        winner_rd = self.rating_deviation(winner.match_count)
        loser_rd = self.rating_deviation(loser.match_count)
        expected = self.expected_score(winner.rating, loser.rating, winner_rd, loser_rd)

        upset = self.upset_multiplier(expected)
        winner_k = self.get_dynamic_k(winner) * upset * self.streak_multiplier(winner)
        loser_k = self.get_dynamic_k(loser) * upset * self.streak_multiplier(loser)

        winner_delta = round_half_up(winner_k * (1 - expected))
        loser_delta = round_half_up(loser_k * -(1 - expected))
        winner_delta = max(cfg.min_rating_change, winner_delta)
        loser_delta = min(-cfg.min_rating_change, loser_delta)

        winner_delta += self.provisional_boost(winner, loser, expected)

        push = self.cluster_push(winner.rating, loser.rating)
        winner_delta += push
        loser_delta -= push

        new_winner_rating = self.clamp_rating(winner.rating + winner_delta)
        new_loser_rating = self.clamp_rating(loser.rating + loser_delta)

        meta = MatchMeta(
            expected_winner_score=expected,
            upset_multiplier=upset,
            winner_rd=winner_rd,
            loser_rd=loser_rd,
            upset=upset > cfg.upset_flag_threshold,
            winner_k=winner_k,
            loser_k=loser_k,
            winner_delta=new_winner_rating - winner.rating,
            loser_delta=new_loser_rating - loser.rating,
        )
        return MatchResult(
            winner=winner.with_result(new_winner_rating, won=True),
            loser=loser.with_result(new_loser_rating, won=False),
            meta=meta,
        )

    # --- Display ---
    def rating_tier(self, rating: float) -> RatingTier:
        for label, threshold in self.config.tier_thresholds:
            if rating >= threshold:
                return RatingTier(label)
        return RatingTier.BEGINNER


_DEFAULT_ENGINE = RatingEngine()


def apply_result(winner: RatedEntity, loser: RatedEntity) -> MatchResult:
    """apply_result with the default tuning."""
    return _DEFAULT_ENGINE.apply_result(winner, loser)


def expected_score(rating_a, rating_b, rd_a=0.0, rd_b=0.0):
    """Calculate expected probability of A beating B"""
    return _DEFAULT_ENGINE.expected_score(rating_a, rating_b, rd_a, rd_b)


def match_quality(rating_a, rating_b, rd_a=0.0, rd_b=0.0):
    return _DEFAULT_ENGINE.match_quality(rating_a, rating_b, rd_a, rd_b)


def rating_tier(rating) -> RatingTier:
    """Display label for a rating (LEGENDARY ... BEGINNER)."""
    return _DEFAULT_ENGINE.rating_tier(rating)
