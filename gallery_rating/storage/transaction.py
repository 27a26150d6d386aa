"""
Transactional Result Recording

The one supported way to record a comparison against a store: lock both
entities, load them, run the engine, and commit both states plus the log
record in a single versioned write.

Usage:
    from gallery_rating.storage import apply_result_and_persist
    result = apply_result_and_persist(store, "img-1", "img-2")
"""

from datetime import datetime, timezone

from gallery_rating.config import DEFAULT_CONFIG, RatingConfig
from gallery_rating.elo.engine import RatingEngine
from gallery_rating.elo.models import InvalidEntityState, MatchResult
from gallery_rating.elo.recalibration import rating_spread, recalibrate_ratings
from gallery_rating.storage.memory import ComparisonRecord, InMemoryEntityStore
from gallery_rating.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


def apply_result_and_persist(store: InMemoryEntityStore, winner_id: str, loser_id: str,
                             engine: RatingEngine | None = None,
                             timestamp: datetime | None = None) -> MatchResult:
    """
    Record that ``winner_id`` beat ``loser_id``.

    Args:
        store: Store holding both entities
        winner_id: Id of the winning image
        loser_id: Id of the losing image
        engine: Engine to use (default tuning if omitted)
        timestamp: Time of the comparison (default: now, UTC)

    Returns:
        MatchResult with the committed states

    Raises:
        InvalidEntityState: Same id twice, or a stored snapshot the engine rejects
        EntityNotFoundError: Either id is unknown
        ConcurrentUpdateError: An entity changed underneath the transaction
    """
    if winner_id == loser_id:
        raise InvalidEntityState(f"An entity cannot be compared with itself: {winner_id}")

    engine = engine or RatingEngine()
    timestamp = timestamp or datetime.now(timezone.utc)

    with store.lock_pair(winner_id, loser_id):
        winner = store.get(winner_id)
        loser = store.get(loser_id)
        versions = (store.version(winner_id), store.version(loser_id))

        result = engine.apply_result(winner, loser)

        record = ComparisonRecord(
            timestamp=timestamp,
            winner_id=winner_id,
            loser_id=loser_id,
            winner_old_rating=winner.rating,
            winner_new_rating=result.winner.rating,
            loser_old_rating=loser.rating,
            loser_new_rating=result.loser.rating,
            expected_winner_score=result.meta.expected_winner_score,
            upset=result.meta.upset,
        )
        store.commit_pair(result.winner, result.loser, versions, record)

    logger.debug(
        f"{winner_id} beat {loser_id}: "
        f"{winner.rating:.0f} -> {result.winner.rating:.0f}, "
        f"{loser.rating:.0f} -> {result.loser.rating:.0f}"
        + (" (upset)" if result.meta.upset else "")
    )
    return result


def recalibrate_store(store: InMemoryEntityStore, config: RatingConfig = DEFAULT_CONFIG) -> dict:
    """
    Recalibrate every rating in the store from its win/loss record.

    Every entity lock is held from the snapshot to the write, so comparisons
    recorded meanwhile wait and are applied on top of the new ratings.

    Returns:
        dict with 'updated', 'unchanged' counts and 'before'/'after' spreads

    Raises:
        ConcurrentUpdateError: An entity changed underneath the recalibration
    """
    with store.lock_all() as locked_ids:
        current = {entity_id: store.get(entity_id) for entity_id in locked_ids}
        versions = {entity_id: store.version(entity_id) for entity_id in locked_ids}
        recalibrated = recalibrate_ratings(current, config)
        changed = {
            entity_id: entity
            for entity_id, entity in recalibrated.items()
            if entity.rating != current[entity_id].rating
        }
        store.replace_all(changed, expected_versions=versions)

    summary = {
        'updated': len(changed),
        'unchanged': len(current) - len(changed),
        'before': rating_spread({k: e.rating for k, e in current.items()}),
        'after': rating_spread({k: e.rating for k, e in recalibrated.items()}),
    }
    logger.info(f"Recalibrated {summary['updated']} entities ({summary['unchanged']} unchanged)")
    logger.info(
        f"  Spread: {summary['before']['spread']:.0f} -> {summary['after']['spread']:.0f}"
    )
    return summary
