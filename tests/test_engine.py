"""
Tests for the pairwise rating engine.
"""

import itertools

import pytest

from gallery_rating.config import DEFAULT_CONFIG, RATING_CEILING, RATING_FLOOR
from gallery_rating.elo.engine import (
    RatingEngine,
    apply_result,
    expected_score,
    match_quality,
    rating_tier,
)
from gallery_rating.elo.models import InvalidEntityState, RatedEntity, RatingTier
from gallery_rating.utils import round_half_up


@pytest.fixture
def engine():
    return RatingEngine()


def entity(rating=1500, wins=0, losses=0, entity_id=None):
    return RatedEntity(rating=rating, wins=wins, losses=losses, entity_id=entity_id)


class TestRatingDeviation:
    """Tests for rating_deviation."""

    def test_fresh_entity(self, engine):
        assert engine.rating_deviation(0) == 250

    def test_decays_ten_per_match(self, engine):
        assert engine.rating_deviation(5) == 200

    def test_floor(self, engine):
        assert engine.rating_deviation(20) == 50
        assert engine.rating_deviation(500) == 50

    def test_monotonic(self, engine):
        values = [engine.rating_deviation(n) for n in range(40)]
        for i in range(len(values) - 1):
            assert values[i] >= values[i + 1]


class TestExpectedScore:
    """Tests for expected_score."""

    def test_equal_ratings(self):
        assert expected_score(1500, 1500, 250, 250) == pytest.approx(0.5)

    def test_classic_scale_without_rd(self):
        # 400 points apart on the classic curve -> 10:1 odds
        assert expected_score(1900, 1500) == pytest.approx(10 / 11)

    def test_uncertainty_flattens_curve(self):
        certain = expected_score(1700, 1500, 50, 50)
        uncertain = expected_score(1700, 1500, 350, 350)
        assert 0.5 < uncertain < certain

    def test_symmetry(self):
        cases = [
            (800, 2400, 50, 350), (1500, 1499, 250, 60), (2100, 1300, 120, 80), (1000, 1000, 50, 50),
        ]
        for ra, rb, rd_a, rd_b in cases:
            assert expected_score(ra, rb, rd_a, rd_b) + expected_score(rb, ra, rd_b, rd_a) == pytest.approx(1.0)


class TestMatchQuality:
    """Tests for match_quality."""

    def test_even_match_is_perfect(self):
        assert match_quality(1500, 1500) == pytest.approx(1.0)

    def test_mismatch_is_poor(self):
        assert match_quality(2400, 800) < 0.05

    def test_bounds_and_symmetry(self):
        for ra in range(800, 2401, 200):
            for rb in range(800, 2401, 200):
                quality = match_quality(ra, rb)
                assert 0.0 <= quality <= 1.0
                assert quality == pytest.approx(match_quality(rb, ra))


class TestDynamicK:
    """Tests for K-factor selection."""

    def test_base_tiers(self, engine):
        assert engine.base_k(0) == 40
        assert engine.base_k(4) == 40
        assert engine.base_k(5) == 32
        assert engine.base_k(14) == 32
        assert engine.base_k(15) == 24
        assert engine.base_k(29) == 24
        assert engine.base_k(30) == 16

    def test_uncertainty_multiplier(self, engine):
        assert engine.uncertainty_multiplier(250) == pytest.approx(1.25)
        assert engine.uncertainty_multiplier(50) == pytest.approx(1.0)

    def test_zone_multiplier(self, engine):
        assert engine.zone_multiplier(2300) == 0.85
        assert engine.zone_multiplier(2000) == 0.92
        assert engine.zone_multiplier(1500) == 1.0
        assert engine.zone_multiplier(1000) == 1.0
        assert engine.zone_multiplier(950) == 0.9

    def test_fresh_entity_k(self, engine):
        assert engine.get_dynamic_k(entity()) == pytest.approx(50.0)


class TestUpsetAndStreak:
    """Tests for surprise and momentum multipliers."""

    def test_even_match_is_neutral(self, engine):
        assert engine.upset_multiplier(0.5) == pytest.approx(1.0)

    def test_favourite_win_shrinks(self, engine):
        assert engine.upset_multiplier(0.8) == pytest.approx(0.91)
        assert engine.upset_multiplier(1.0) == pytest.approx(0.85)

    def test_underdog_win_grows(self, engine):
        assert engine.upset_multiplier(0.2) == pytest.approx(1.3)
        assert engine.upset_multiplier(0.0) == pytest.approx(1.5)

    def test_streak_needs_five_matches(self, engine):
        assert engine.streak_multiplier(entity(wins=4)) == 1.0

    def test_hot_streak(self, engine):
        assert engine.streak_multiplier(entity(wins=10)) == pytest.approx(1.05)
        assert engine.streak_multiplier(entity(wins=8, losses=2)) == pytest.approx(1.01)

    def test_cold_streak(self, engine):
        assert engine.streak_multiplier(entity(losses=10)) == pytest.approx(1.05)

    def test_middling_record(self, engine):
        assert engine.streak_multiplier(entity(wins=5, losses=5)) == 1.0


class TestApplyResult:
    """Tests for apply_result scenarios."""

    def test_fresh_pair(self, engine):
        winner, loser = entity(entity_id="a"), entity(entity_id="b")
        new_winner, new_loser, meta = engine.apply_result(winner, loser)

        assert meta.expected_winner_score == pytest.approx(0.5)
        base_delta = round_half_up(engine.get_dynamic_k(winner) * 0.5)
        push = engine.cluster_push(1500, 1500)
        assert base_delta == 25
        assert push == 3
        assert new_winner.rating == 1500 + base_delta + push
        assert new_loser.rating == 1500 - base_delta - push
        assert new_winner.match_count == 1
        assert new_loser.match_count == 1
        assert (new_winner.wins, new_winner.losses) == (1, 0)
        assert (new_loser.wins, new_loser.losses) == (0, 1)

    def test_big_upset(self, engine):
        winner = entity(rating=1000, wins=10, losses=10)
        loser = entity(rating=1900, wins=10, losses=10)
        new_winner, _, meta = engine.apply_result(winner, loser)

        assert meta.expected_winner_score < 0.1
        assert meta.upset_multiplier > 1.3
        assert meta.upset is True
        baseline = round_half_up(engine.get_dynamic_k(winner) * (1 - meta.expected_winner_score))
        assert meta.winner_delta >= baseline * 1.3
        assert new_winner.rating == 1000 + meta.winner_delta

    def test_ceiling_clamp_reports_actual_delta(self, engine):
        winner = entity(rating=2395)
        loser = entity(rating=2000)
        new_winner, _, meta = engine.apply_result(winner, loser)

        unclamped = RatingEngine(DEFAULT_CONFIG.with_overrides(rating_ceiling=3000))
        _, _, raw_meta = unclamped.apply_result(winner, loser)
        assert raw_meta.winner_delta > 5

        assert new_winner.rating == min(RATING_CEILING, 2395 + raw_meta.winner_delta)
        assert new_winner.rating == 2400
        assert meta.winner_delta == 2400 - 2395

    def test_floor_clamp(self, engine):
        winner = entity(rating=1200, wins=40, losses=40)
        loser = entity(rating=800, wins=0, losses=60)
        _, new_loser, meta = engine.apply_result(winner, loser)
        assert new_loser.rating == RATING_FLOOR
        assert meta.loser_delta == 0

    def test_minimum_movement_against_heavy_favourite(self, engine):
        winner = entity(rating=2000, wins=30, losses=10)
        loser = entity(rating=900, wins=10, losses=30)
        new_winner, new_loser, meta = engine.apply_result(winner, loser)
        assert meta.expected_winner_score > 0.99
        assert new_winner.rating - winner.rating >= 2
        assert new_loser.rating - loser.rating <= -2

    def test_provisional_boost(self, engine):
        newcomer = entity(rating=1500, wins=2, losses=2)
        veteran = entity(rating=1700, wins=20, losses=20)
        boost = engine.provisional_boost(newcomer, veteran, 0.3)
        assert boost == round_half_up(8 * 0.7)
        assert engine.provisional_boost(veteran, newcomer, 0.7) == 0

    def test_no_cluster_push_when_apart(self, engine):
        assert engine.cluster_push(1600, 1500) == 0
        assert engine.cluster_push(1549, 1500) == 0
        assert engine.cluster_push(1520, 1500) == 2

    def test_meta_fields(self, engine):
        _, _, meta = engine.apply_result(entity(wins=10), entity(losses=3))
        assert meta.winner_rd == 150
        assert meta.loser_rd == 220
        assert meta.upset == (meta.upset_multiplier > 1.1)

    def test_inputs_unchanged(self, engine):
        winner, loser = entity(entity_id="a"), entity(entity_id="b")
        engine.apply_result(winner, loser)
        assert winner.rating == 1500 and winner.wins == 0
        assert loser.rating == 1500 and loser.losses == 0

    def test_module_level_helper(self):
        result = apply_result(entity(), entity())
        assert result.winner.rating > result.loser.rating


class TestApplyResultProperties:
    """Property checks over a grid of ratings and records."""

    RATINGS = (800, 801, 950, 1200, 1500, 1510, 1880, 2100, 2250, 2399, 2400)
    RECORDS = ((0, 0), (3, 1), (10, 2), (2, 10), (20, 20), (60, 5))

    def cases(self):
        for wr, lr in itertools.product(self.RATINGS, repeat=2):
            for (ww, wl), (lw, ll) in itertools.product(self.RECORDS, repeat=2):
                yield entity(wr, ww, wl), entity(lr, lw, ll)

    def test_bounds_direction_and_min_movement(self, engine):
        for winner, loser in self.cases():
            new_winner, new_loser, meta = engine.apply_result(winner, loser)

            assert RATING_FLOOR <= new_winner.rating <= RATING_CEILING
            assert RATING_FLOOR <= new_loser.rating <= RATING_CEILING
            assert new_winner.rating >= winner.rating
            assert new_loser.rating <= loser.rating

            if new_winner.rating < RATING_CEILING:
                assert new_winner.rating - winner.rating >= 2
            if new_loser.rating > RATING_FLOOR:
                assert new_loser.rating - loser.rating <= -2

            assert meta.winner_delta == new_winner.rating - winner.rating
            assert meta.loser_delta == new_loser.rating - loser.rating


class TestInvalidInput:
    """Tests for InvalidEntityState handling."""

    def test_same_object(self, engine):
        a = entity(entity_id="a")
        with pytest.raises(InvalidEntityState):
            engine.apply_result(a, a)

    def test_same_id(self, engine):
        with pytest.raises(InvalidEntityState):
            engine.apply_result(entity(entity_id="a"), entity(rating=1600, entity_id="a"))

    def test_rating_out_of_bounds(self, engine):
        with pytest.raises(InvalidEntityState):
            engine.apply_result(entity(rating=2500), entity())
        with pytest.raises(InvalidEntityState):
            engine.apply_result(entity(), entity(rating=700))

    def test_not_an_entity(self, engine):
        with pytest.raises(InvalidEntityState):
            engine.apply_result({"rating": 1500, "wins": 0, "losses": 0}, entity())

    def test_custom_bounds_accept_wider_range(self):
        wide = RatingEngine(DEFAULT_CONFIG.with_overrides(rating_floor=600, rating_ceiling=2800))
        new_winner, _, _ = wide.apply_result(entity(rating=2600), entity(rating=700))
        assert new_winner.rating <= 2800


class TestRatingTier:
    """Tests for rating_tier."""

    def test_labels(self):
        assert rating_tier(2400) == RatingTier.LEGENDARY
        assert rating_tier(2200) == RatingTier.LEGENDARY
        assert rating_tier(2199) == RatingTier.ELITE
        assert rating_tier(1700) == RatingTier.EXPERT
        assert rating_tier(1500) == RatingTier.ADVANCED
        assert rating_tier(1300) == RatingTier.INTERMEDIATE
        assert rating_tier(1000) == RatingTier.NOVICE
        assert rating_tier(999) == RatingTier.BEGINNER

    def test_tier_is_display_string(self):
        assert rating_tier(900).value == "BEGINNER"
