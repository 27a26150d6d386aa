"""
Comparison Log Replay

Rebuilds ratings from a log of recorded comparisons by feeding each one, in
timestamp order, through the rating engine. Used to backfill a fresh tuning,
audit stored ratings, and export leaderboards.

Input CSV columns: timestamp, winner_id, loser_id
Optional entity snapshot columns: entity_id, owner_id, rating, wins, losses

Usage:
    python -m gallery_rating.elo.replay
    OR
    from gallery_rating.elo import replay_comparisons
"""

from pathlib import Path

import pandas as pd

from gallery_rating.config import (
    COMPARISONS_PATTERN,
    DEFAULT_CONFIG,
    ENTITIES_PATTERN,
    OUTPUT_FOLDER,
)
from gallery_rating.elo.aggregation import (
    build_gallery_leaderboard,
    build_leaderboard,
    group_by_owner,
    wilson_lower_bound,
)
from gallery_rating.elo.engine import RatingEngine
from gallery_rating.elo.models import InvalidEntityState, RatedEntity
from gallery_rating.elo.recalibration import rating_spread
from gallery_rating.utils import atomic_write_csv, cleanup_old_files, latest_file, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

REQUIRED_COLUMNS = ('timestamp', 'winner_id', 'loser_id')

RATINGS_COLUMNS = [
    'entity_id', 'owner_id', 'rating', 'wins', 'losses', 'matches',
    'win_rate', 'wilson_score', 'rating_deviation', 'tier',
]

HISTORY_COLUMNS = [
    'timestamp', 'winner_id', 'loser_id',
    'winner_old_rating', 'winner_new_rating', 'winner_delta',
    'loser_old_rating', 'loser_new_rating', 'loser_delta',
    'expected_winner_score', 'upset_multiplier', 'upset',
]


def _log_distribution(label: str, ratings: dict) -> None:
    stats = rating_spread(ratings)
    if not stats['count']:
        return
    logger.info(f"{label}:")
    logger.info(f"  Min: {stats['min']:.2f}")
    logger.info(f"  Max: {stats['max']:.2f}")
    logger.info(f"  Spread: {stats['spread']:.2f}")
    logger.info(f"  Mean: {stats['mean']:.2f}")
    logger.info(f"  Median: {stats['median']:.2f}")
    logger.info(f"  Std Dev: {stats['std_dev']:.2f}")


def replay_comparisons(df: pd.DataFrame, engine: RatingEngine | None = None,
                       entities: dict[str, RatedEntity] | None = None):
    """
    Replay a comparison log through the engine.

    Args:
        df: DataFrame with columns [timestamp, winner_id, loser_id]
        engine: Engine to use (default tuning if omitted)
        entities: Starting snapshots by id; unknown ids start fresh

    Returns:
        Tuple of (ratings_df, history_df, final_entities)

    Raises:
        ValueError: If required columns are missing
        InvalidEntityState: If a row compares an entity with itself
    """
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Comparison log is missing columns: {', '.join(missing)}")

    engine = engine or RatingEngine()
    state = dict(entities or {})
    history = []

    ordered = df.sort_values('timestamp', kind='stable')
    logger.info(f"Replaying {len(ordered)} comparisons...")

    for row in ordered.itertuples(index=False):
        winner_id, loser_id = str(row.winner_id), str(row.loser_id)
        if winner_id == loser_id:
            raise InvalidEntityState(f"Comparison at {row.timestamp} pits {winner_id} against itself")

        winner = state.get(winner_id) or RatedEntity.new(winner_id, config=engine.config)
        loser = state.get(loser_id) or RatedEntity.new(loser_id, config=engine.config)

        new_winner, new_loser, meta = engine.apply_result(winner, loser)
        state[winner_id] = new_winner
        state[loser_id] = new_loser

        history.append({
            'timestamp': row.timestamp,
            'winner_id': winner_id,
            'loser_id': loser_id,
            'winner_old_rating': winner.rating,
            'winner_new_rating': new_winner.rating,
            'winner_delta': meta.winner_delta,
            'loser_old_rating': loser.rating,
            'loser_new_rating': new_loser.rating,
            'loser_delta': meta.loser_delta,
            'expected_winner_score': round(meta.expected_winner_score, 4),
            'upset_multiplier': round(meta.upset_multiplier, 4),
            'upset': meta.upset,
        })

    logger.info(f"Processed {len(history)} comparisons, {len(state)} unique images")
    _log_distribution("Rating Distribution", {k: e.rating for k, e in state.items()})

    config = engine.config
    ratings_rows = []
    for entity_id, entity in state.items():
        ratings_rows.append({
            'entity_id': entity_id,
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

    ratings_df = pd.DataFrame(ratings_rows, columns=RATINGS_COLUMNS)
    ratings_df = ratings_df.sort_values('rating', ascending=False, kind='stable').reset_index(drop=True)
    history_df = pd.DataFrame(history, columns=HISTORY_COLUMNS)

    upsets = int(history_df['upset'].sum()) if not history_df.empty else 0
    logger.info(f"Upsets: {upsets} of {len(history_df)} comparisons")

    return ratings_df, history_df, state


def load_entities(path: Path) -> dict[str, RatedEntity]:
    """Load a starting entity snapshot, keyed by entity_id."""
    df = pd.read_csv(path, dtype={'entity_id': str, 'owner_id': str})
    entities = {}
    for record in df.to_dict('records'):
        entity = RatedEntity.from_record(record)
        if entity.entity_id is None:
            raise InvalidEntityState(f"{path} has a row without entity_id")
        entities[entity.entity_id] = entity
    logger.info(f"Loaded {len(entities)} starting entities from {path}")
    return entities


def process_dataset(input_csv: Path, output_prefix: str = "replay",
                    entities_csv: Path | None = None,
                    engine: RatingEngine | None = None,
                    output_folder: Path | None = None):
    """
    Replay one comparison log and export ratings, history and leaderboards.

    Returns:
        Tuple of (ratings_df, history_df, gallery_leaderboard_df)
    """
    output_folder = output_folder or OUTPUT_FOLDER
    logger.info("=" * 60)
    logger.info(f"Loading comparisons from {input_csv}")
    logger.info("=" * 60)
    df = pd.read_csv(input_csv, parse_dates=['timestamp'], dtype={'winner_id': str, 'loser_id': str})
    logger.info(f"Loaded {len(df)} comparisons")

    starting = load_entities(entities_csv) if entities_csv else None
    ratings_df, history_df, state = replay_comparisons(df, engine=engine, entities=starting)

    config = engine.config if engine else DEFAULT_CONFIG
    leaderboard = build_leaderboard(state.values(), config=config)
    gallery_board = build_gallery_leaderboard(group_by_owner(state.values()), config=config)

    if not leaderboard.empty:
        logger.info("Top 10 Images:")
        logger.info("\n" + leaderboard.head(10).to_string(index=False))
    if not gallery_board.empty:
        logger.info("Top 10 Galleries:")
        logger.info("\n" + gallery_board.head(10).to_string(index=False))

    if df.empty:
        date_str = pd.Timestamp.now().strftime('%Y%m%d')
    else:
        date_str = df['timestamp'].max().strftime('%Y%m%d')
    ratings_csv = output_folder / f"{output_prefix}_ratings_{date_str}.csv"
    history_csv = output_folder / f"{output_prefix}_history_{date_str}.csv"
    galleries_csv = output_folder / f"{output_prefix}_galleries_{date_str}.csv"

    atomic_write_csv(ratings_df, ratings_csv, index=False)
    atomic_write_csv(history_df, history_csv, index=False)
    atomic_write_csv(gallery_board, galleries_csv, index=False)

    cleanup_old_files(f"{output_prefix}_ratings_*.csv", keep_file=ratings_csv, folder=output_folder)
    cleanup_old_files(f"{output_prefix}_history_*.csv", keep_file=history_csv, folder=output_folder)
    cleanup_old_files(f"{output_prefix}_galleries_*.csv", keep_file=galleries_csv, folder=output_folder)

    logger.info("Exported CSV files:")
    logger.info(f"  Ratings: {ratings_csv}")
    logger.info(f"  History: {history_csv}")
    logger.info(f"  Galleries: {galleries_csv}")

    return ratings_df, history_df, gallery_board


def main():
    input_csv = latest_file(COMPARISONS_PATTERN)
    if input_csv is None:
        logger.error(f"No files matching {COMPARISONS_PATTERN} found in {OUTPUT_FOLDER}")
        return None
    entities_csv = latest_file(ENTITIES_PATTERN)
    return process_dataset(input_csv, entities_csv=entities_csv)


if __name__ == "__main__":
    results = main()
