"""
Aggregation & Leaderboard Scoring

Fair ranking of images and galleries from raw win/loss/rating records:
- wilson_lower_bound: sample-size-aware lower bound on a win proportion
- composite_score: rolls a gallery's best images up into one score
- build_leaderboard / build_gallery_leaderboard: ranked pandas tables

Everything here is a pure function of already-loaded snapshots.
"""

import math
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from gallery_rating.config import (
    DEFAULT_CONFIG,
    GALLERY_MIN_MATCHES,
    LEADERBOARD_LIMIT,
    RatingConfig,
)
from gallery_rating.elo.engine import RatingEngine
from gallery_rating.elo.models import CompositeScore, InvalidEntityState, RatedEntity
from gallery_rating.utils import clamp, round_half_up

LEADERBOARD_COLUMNS = [
    'rank', 'entity_id', 'owner_id', 'rating', 'wins', 'losses', 'matches',
    'win_rate', 'wilson_score', 'rating_deviation', 'tier',
]

GALLERY_LEADERBOARD_COLUMNS = [
    'rank', 'owner_id', 'score', 'avg_rating', 'top_rating', 'confidence',
    'images_used', 'total_wins', 'total_losses', 'win_rate', 'wilson_score',
]


def wilson_lower_bound(wins: int, losses: int, z: float = DEFAULT_CONFIG.wilson_z) -> float:
    """
    Lower bound of the Wilson score interval for a binomial proportion.

    Penalises small samples: 1 win / 0 losses ranks below 40 wins / 5 losses.
    Returns 0 when there are no matches.

    Raises:
        InvalidEntityState: If wins or losses is negative
    """
    if wins < 0 or losses < 0:
        raise InvalidEntityState(f"wins and losses must be non-negative, got {wins}/{losses}")
    n = wins + losses
    if n == 0:
        return 0.0

    p = wins / n
    denominator = 1 + z * z / n
    centre = p + z * z / (2 * n)
    spread = z * math.sqrt((p * (1 - p) + z * z / (4 * n)) / n)
    # Guards tiny negative results from float cancellation at p == 0
    return max(0.0, (centre - spread) / denominator)


def weighted_top_rating(ratings: list[float], decay: float) -> float:
    """Geometrically weighted mean: the i-th best rating gets weight decay**i."""
    weights = decay ** np.arange(len(ratings))
    return float(np.average(ratings, weights=weights))


def composite_score(members: Iterable[RatedEntity], top_n: int | None = None,
                    config: RatingConfig = DEFAULT_CONFIG) -> CompositeScore:
    """
    Score an owner (gallery) from its member images.

    Only members with at least one match count. The top ``top_n`` of those by
    rating supply both the win/loss totals and a decaying weighted rating.
    The final score blends the Wilson component toward the rating component
    as the number of matches grows.

    Args:
        members: Rated images owned by the gallery
        top_n: How many of the best images to use (default: config.composite_top_n)
        config: Tuning to use

    Returns:
        CompositeScore; a neutral zero score when no member has been rated
    """
    top_n = config.composite_top_n if top_n is None else top_n
    if top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}")

    rated = [m for m in members if m.is_rated]
    if not rated:
        return CompositeScore(
            score=0,
            avg_rating=config.base_rating,
            confidence=0.0,
            top_rating=config.base_rating,
            images_used=0,
            total_wins=0,
            total_losses=0,
            win_rate=0.0,
            wilson_score=0.0,
        )

    top = sorted(rated, key=lambda m: m.rating, reverse=True)[:top_n]

    total_wins = sum(m.wins for m in top)
    total_losses = sum(m.losses for m in top)
    total_matches = total_wins + total_losses
    win_rate = total_wins / total_matches
    wilson = wilson_lower_bound(total_wins, total_losses, config.wilson_z)

    weighted_rating = weighted_top_rating([m.rating for m in top], config.composite_decay)
    confidence = min(1.0, total_matches / config.composite_confidence_matches)

    wilson_component = wilson * config.wilson_scale
    rating_component = clamp(
        (weighted_rating - config.rating_norm_offset) / config.rating_norm_divisor,
        0,
        config.rating_norm_max,
    )
    rating_weight = confidence * 0.5
    score = round_half_up(wilson_component * (1 - rating_weight) + rating_component * rating_weight)

    return CompositeScore(
        score=score,
        avg_rating=weighted_rating,
        confidence=confidence,
        top_rating=top[0].rating,
        images_used=len(top),
        total_wins=total_wins,
        total_losses=total_losses,
        win_rate=win_rate,
        wilson_score=wilson,
    )


def build_leaderboard(entities: Iterable[RatedEntity], min_matches: int = 1,
                      limit: int | None = LEADERBOARD_LIMIT,
                      config: RatingConfig = DEFAULT_CONFIG) -> pd.DataFrame:
    """
    Rank individual images by Wilson score, breaking ties on rating.

    Returns:
        DataFrame with LEADERBOARD_COLUMNS, rank starting at 1
    """
    engine = RatingEngine(config)
    rows = []
    for entity in entities:
        if entity.match_count < min_matches:
            continue
        rows.append({
            'entity_id': entity.entity_id,
            'owner_id': entity.owner_id,
            'rating': entity.rating,
            'wins': entity.wins,
            'losses': entity.losses,
            'matches': entity.match_count,
            'win_rate': round(entity.win_rate, 4),
            'wilson_score': round(wilson_lower_bound(entity.wins, entity.losses, config.wilson_z), 4),
            'rating_deviation': engine.rating_deviation(entity.match_count),
            'tier': engine.rating_tier(entity.rating).value,
        })

    if not rows:
        return pd.DataFrame(columns=LEADERBOARD_COLUMNS)

    df = pd.DataFrame(rows)
    df = df.sort_values(['wilson_score', 'rating'], ascending=False, kind='stable')
    if limit is not None:
        df = df.head(limit)
    df = df.reset_index(drop=True)
    df['rank'] = df.index + 1
    return df[LEADERBOARD_COLUMNS]


def build_gallery_leaderboard(members_by_owner: Mapping[str, Iterable[RatedEntity]],
                              top_n: int | None = None,
                              min_matches: int = GALLERY_MIN_MATCHES,
                              limit: int | None = LEADERBOARD_LIMIT,
                              config: RatingConfig = DEFAULT_CONFIG) -> pd.DataFrame:
    """
    Rank galleries by composite score.

    Galleries whose contributing images have fewer than ``min_matches``
    matches in total are left out.
    """
    rows = []
    for owner_id, members in members_by_owner.items():
        result = composite_score(members, top_n=top_n, config=config)
        if result.total_matches < min_matches:
            continue
        rows.append({
            'owner_id': owner_id,
            'score': result.score,
            'avg_rating': round(result.avg_rating, 2),
            'top_rating': result.top_rating,
            'confidence': round(result.confidence, 3),
            'images_used': result.images_used,
            'total_wins': result.total_wins,
            'total_losses': result.total_losses,
            'win_rate': round(result.win_rate, 4),
            'wilson_score': round(result.wilson_score, 4),
        })

    if not rows:
        return pd.DataFrame(columns=GALLERY_LEADERBOARD_COLUMNS)

    df = pd.DataFrame(rows)
    df = df.sort_values(['score', 'avg_rating'], ascending=False, kind='stable')
    if limit is not None:
        df = df.head(limit)
    df = df.reset_index(drop=True)
    df['rank'] = df.index + 1
    return df[GALLERY_LEADERBOARD_COLUMNS]


def group_by_owner(entities: Iterable[RatedEntity]) -> dict[str, list[RatedEntity]]:
    """Collect entities under their owner_id; entities without an owner are skipped."""
    groups: dict[str, list[RatedEntity]] = {}
    for entity in entities:
        if entity.owner_id is None:
            continue
        groups.setdefault(entity.owner_id, []).append(entity)
    return groups
