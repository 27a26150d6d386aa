"""
Tests for Wilson scoring, composite scores and leaderboards.
"""

import pytest

from gallery_rating.config import BASE_RATING
from gallery_rating.elo.aggregation import (
    GALLERY_LEADERBOARD_COLUMNS,
    LEADERBOARD_COLUMNS,
    build_gallery_leaderboard,
    build_leaderboard,
    composite_score,
    group_by_owner,
    weighted_top_rating,
    wilson_lower_bound,
)
from gallery_rating.elo.models import InvalidEntityState, RatedEntity


def image(rating, wins, losses, entity_id=None, owner_id=None):
    return RatedEntity(rating=rating, wins=wins, losses=losses,
                       entity_id=entity_id, owner_id=owner_id)


class TestWilsonLowerBound:
    """Tests for wilson_lower_bound."""

    def test_no_matches(self):
        assert wilson_lower_bound(0, 0) == 0.0

    def test_known_value(self):
        # 1 win, 0 losses at 95%: 1 / (1 + z^2)
        assert wilson_lower_bound(1, 0) == pytest.approx(0.2065, abs=1e-4)

    def test_small_sample_ranks_below_large(self):
        assert wilson_lower_bound(1, 0) < wilson_lower_bound(40, 5)

    def test_all_losses_is_zero(self):
        assert wilson_lower_bound(0, 10) == pytest.approx(0.0, abs=1e-12)

    def test_bounds(self):
        for wins in range(0, 30, 3):
            for losses in range(0, 30, 3):
                assert 0.0 <= wilson_lower_bound(wins, losses) <= 1.0

    def test_monotonic_in_wins_for_fixed_losses(self):
        for losses in (0, 1, 5, 20):
            scores = [wilson_lower_bound(w, losses) for w in range(0, 60)]
            for i in range(len(scores) - 1):
                assert scores[i] <= scores[i + 1]

    def test_monotonic_in_wins_for_fixed_total(self):
        total = 40
        scores = [wilson_lower_bound(w, total - w) for w in range(total + 1)]
        for i in range(len(scores) - 1):
            assert scores[i] <= scores[i + 1]

    def test_negative_counts_rejected(self):
        with pytest.raises(InvalidEntityState):
            wilson_lower_bound(-1, 3)
        with pytest.raises(InvalidEntityState):
            wilson_lower_bound(3, -1)


class TestWeightedTopRating:
    """Tests for the geometrically decaying average."""

    def test_single_rating(self):
        assert weighted_top_rating([1800], 0.7) == pytest.approx(1800)

    def test_two_ratings(self):
        expected = (2000 * 1 + 1000 * 0.7) / 1.7
        assert weighted_top_rating([2000, 1000], 0.7) == pytest.approx(expected)


class TestCompositeScore:
    """Tests for composite_score."""

    def test_no_rated_members(self):
        result = composite_score([image(1500, 0, 0), image(1500, 0, 0)])
        assert result.score == 0
        assert result.avg_rating == BASE_RATING
        assert result.confidence == 0
        assert result.images_used == 0

    def test_empty(self):
        assert composite_score([]).score == 0

    def test_unrated_member_excluded(self):
        result = composite_score([image(2000, 50, 0), image(1500, 0, 0)])
        assert result.images_used == 1
        assert result.total_wins == 50
        assert result.total_losses == 0
        assert result.top_rating == 2000
        assert result.avg_rating == pytest.approx(2000)
        assert result.confidence == 1.0

    def test_score_formula(self):
        members = [image(1800, 6, 2), image(1600, 3, 3), image(1400, 1, 5)]
        result = composite_score(members)

        wilson = wilson_lower_bound(10, 10)
        weighted = (1800 + 1600 * 0.7 + 1400 * 0.49) / (1 + 0.7 + 0.49)
        confidence = 20 / 30
        expected = (
            wilson * 500 * (1 - confidence * 0.5)
            + ((weighted - 600) / 2.2) * (confidence * 0.5)
        )
        assert result.score == int(expected + 0.5)
        assert result.win_rate == pytest.approx(0.5)
        assert result.wilson_score == pytest.approx(wilson)
        assert result.confidence == pytest.approx(confidence)

    def test_only_top_n_members_counted(self):
        members = [image(1500 + i * 10, 1, 1) for i in range(8)]
        result = composite_score(members, top_n=5)
        assert result.images_used == 5
        assert result.total_wins == 5
        assert result.total_losses == 5
        assert result.top_rating == 1570

    def test_winless_gallery_scores_on_rating_only(self):
        low = composite_score([image(800, 0, 40)])
        assert low.wilson_score == pytest.approx(0.0, abs=1e-12)
        assert low.score == 45  # (800 - 600) / 2.2 * 0.5

    def test_idempotent(self):
        members = [image(1700, 4, 1), image(1650, 2, 2), image(900, 0, 5)]
        assert composite_score(members) == composite_score(members)
        assert composite_score(members, top_n=2) == composite_score(members, top_n=2)

    def test_order_independent(self):
        members = [image(1700, 4, 1), image(1650, 2, 2), image(1900, 7, 1)]
        assert composite_score(members) == composite_score(list(reversed(members)))

    def test_invalid_top_n(self):
        with pytest.raises(ValueError):
            composite_score([image(1500, 1, 0)], top_n=0)

    def test_more_evidence_shifts_toward_rating(self):
        few = composite_score([image(2200, 3, 0)])
        many = composite_score([image(2200, 60, 0)])
        assert few.confidence < many.confidence
        assert few.score < many.score


class TestBuildLeaderboard:
    """Tests for build_leaderboard."""

    def test_ranks_by_wilson(self):
        entities = [
            image(2100, 1, 0, entity_id="lucky"),
            image(1900, 40, 5, entity_id="proven"),
            image(1500, 0, 0, entity_id="fresh"),
        ]
        df = build_leaderboard(entities)
        assert list(df.columns) == LEADERBOARD_COLUMNS
        assert list(df['entity_id']) == ["proven", "lucky"]
        assert list(df['rank']) == [1, 2]

    def test_limit(self):
        entities = [image(1500, i + 1, 1, entity_id=f"e{i}") for i in range(10)]
        df = build_leaderboard(entities, limit=3)
        assert len(df) == 3
        assert df.iloc[0]['entity_id'] == "e9"

    def test_empty(self):
        df = build_leaderboard([])
        assert df.empty
        assert list(df.columns) == LEADERBOARD_COLUMNS

    def test_tier_column(self):
        df = build_leaderboard([image(2300, 5, 0, entity_id="top")])
        assert df.iloc[0]['tier'] == "LEGENDARY"


class TestBuildGalleryLeaderboard:
    """Tests for build_gallery_leaderboard."""

    def test_ranks_by_composite_score(self):
        groups = {
            "strong": [image(2000, 30, 5), image(1900, 20, 5)],
            "weak": [image(1200, 5, 25)],
            "new": [image(1500, 1, 0)],
        }
        df = build_gallery_leaderboard(groups)
        assert list(df.columns) == GALLERY_LEADERBOARD_COLUMNS
        # "new" has fewer than five matches and is left out
        assert list(df['owner_id']) == ["strong", "weak"]
        assert list(df['rank']) == [1, 2]

    def test_group_by_owner(self):
        entities = [
            image(1500, 1, 0, entity_id="a", owner_id="g1"),
            image(1500, 1, 0, entity_id="b", owner_id="g2"),
            image(1500, 1, 0, entity_id="c", owner_id="g1"),
            image(1500, 1, 0, entity_id="d"),
        ]
        groups = group_by_owner(entities)
        assert sorted(groups) == ["g1", "g2"]
        assert [e.entity_id for e in groups["g1"]] == ["a", "c"]
