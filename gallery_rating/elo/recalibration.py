"""
Rating Recalibration

Batch redistribution of ratings from each image's win/loss record. Used after
a tuning change or a data repair, when incrementally earned ratings have
bunched up and no longer reflect demonstrated performance.

- Unrated images return to the base rating
- Performance bonus: win rate above/below 0.5, scaled by match confidence
- Existing deviation from base is kept at 30% weight when meaningful
- Extra push for strong (>70%) and weak (<30%) records with 10+ matches
"""

import statistics
from dataclasses import replace
from typing import Mapping

from gallery_rating.config import DEFAULT_CONFIG, RatingConfig
from gallery_rating.elo.models import RatedEntity
from gallery_rating.utils import clamp, round_half_up


def recalibrate_rating(entity: RatedEntity, config: RatingConfig = DEFAULT_CONFIG) -> float:
    """
    Recompute one image's rating from its record.

    Mathematical behavior (base 1500):
    - 20+ matches at 100% win rate: +400 before edge adjustment, +90 edge bonus
    - 50% win rate: stays at base (plus 30% of any prior deviation)
    - 0% win rate with 20+ matches: -400, -90 edge penalty

    Returns:
        New rating, rounded and clamped to the config bounds
    """
    if not entity.is_rated:
        return config.base_rating

    base = config.base_rating
    win_rate = entity.win_rate
    confidence = min(1.0, entity.match_count / config.recalibration_confidence_matches)
    performance_bonus = (win_rate - 0.5) * config.recalibration_spread * confidence

    new_rating = base + performance_bonus
    old_deviation = entity.rating - base
    if abs(old_deviation) > config.recalibration_min_deviation:
        # Blend prior deviation in, trusting the match record more
        weight = config.recalibration_history_weight
        new_rating = base + old_deviation * weight + performance_bonus * (1 - weight)

    if entity.match_count >= config.recalibration_edge_matches:
        high, low = config.recalibration_high_win_rate, config.recalibration_low_win_rate
        if win_rate > high:
            new_rating += config.recalibration_edge_scale * (win_rate - high)
        elif win_rate < low:
            new_rating -= config.recalibration_edge_scale * (low - win_rate)

    return clamp(round_half_up(new_rating), config.rating_floor, config.rating_ceiling)


def recalibrate_ratings(entities: Mapping[str, RatedEntity],
                        config: RatingConfig = DEFAULT_CONFIG) -> dict[str, RatedEntity]:
    """
    Recalibrate a whole population.

    Args:
        entities: dict of entity_id -> RatedEntity

    Returns:
        dict of entity_id -> RatedEntity with only the rating changed
    """
    return {
        entity_id: replace(entity, rating=recalibrate_rating(entity, config))
        for entity_id, entity in entities.items()
    }


def rating_spread(ratings: Mapping[str, float]) -> dict:
    """
    Summarise a rating distribution.

    Returns:
        dict with count, min, max, spread, mean, median and std_dev
        (all zero for an empty population)
    """
    values = list(ratings.values())
    if not values:
        return {'count': 0, 'min': 0, 'max': 0, 'spread': 0, 'mean': 0, 'median': 0, 'std_dev': 0}

    return {
        'count': len(values),
        'min': min(values),
        'max': max(values),
        'spread': max(values) - min(values),
        'mean': statistics.mean(values),
        'median': statistics.median(values),
        'std_dev': statistics.stdev(values) if len(values) > 1 else 0,
    }
