"""
CSV-backed Entity Store

Adds snapshot persistence to InMemoryEntityStore: entities and the comparison
log are loaded from and saved to CSV files with pandas, always written
atomically.

Programmatic usage:
    store = CsvEntityStore.load(Path("data/processed/entities_20260101.csv"))
    ...
    store.save()
"""

from dataclasses import asdict
from pathlib import Path

import pandas as pd

from gallery_rating.elo.models import InvalidEntityState, RatedEntity
from gallery_rating.storage.memory import ComparisonRecord, InMemoryEntityStore, StorageError
from gallery_rating.utils import atomic_write_csv, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

ENTITY_COLUMNS = ['entity_id', 'owner_id', 'rating', 'wins', 'losses']
HISTORY_COLUMNS = [
    'timestamp', 'winner_id', 'loser_id',
    'winner_old_rating', 'winner_new_rating',
    'loser_old_rating', 'loser_new_rating',
    'expected_winner_score', 'upset',
]


class CsvEntityStore(InMemoryEntityStore):
    """InMemoryEntityStore with CSV snapshots."""

    def __init__(self, path: Path, entities=None, history_path: Path | None = None,
                 history=None):
        super().__init__(entities, history=history)
        self.path = Path(path)
        self.history_path = Path(history_path) if history_path else None

    @classmethod
    def load(cls, path: Path, history_path: Path | None = None) -> "CsvEntityStore":
        """
        Load entities from a CSV snapshot, and the comparison log from
        ``history_path`` when that file exists.

        A missing file yields an empty store. Rows with missing or invalid
        fields are rejected rather than defaulted.

        Raises:
            StorageError: If required columns are absent or a row is invalid
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No snapshot at {path}, starting empty")
            return cls(path, history_path=history_path, history=load_history(history_path))

        df = pd.read_csv(path, dtype={'entity_id': str, 'owner_id': str})
        missing_cols = set(ENTITY_COLUMNS) - set(df.columns)
        if missing_cols:
            raise StorageError(f"{path} is missing columns: {', '.join(sorted(missing_cols))}")

        entities = []
        for line_no, record in enumerate(df.to_dict('records'), start=2):
            try:
                entities.append(RatedEntity.from_record(record))
            except InvalidEntityState as e:
                raise StorageError(f"{path}:{line_no}: {e}") from e

        logger.info(f"Loaded {len(entities)} entities from {path}")
        return cls(path, entities=entities, history_path=history_path,
                   history=load_history(history_path))

    def save(self, path: Path | None = None) -> Path:
        """Write the current snapshot (and history, if configured) atomically."""
        target = Path(path) if path else self.path
        rows = [e.to_record() for e in self.entities()]
        df = pd.DataFrame(rows, columns=ENTITY_COLUMNS)
        atomic_write_csv(df, target, index=False)
        logger.info(f"Saved {len(df)} entities to {target}")

        if self.history_path is not None:
            self.save_history(self.history_path)
        return target

    def save_history(self, path: Path) -> Path:
        df = pd.DataFrame([asdict(r) for r in self.history()], columns=HISTORY_COLUMNS)
        atomic_write_csv(df, Path(path), index=False)
        logger.info(f"Saved {len(df)} comparison records to {path}")
        return Path(path)


def load_history(path: Path | None) -> list[ComparisonRecord]:
    """
    Read a comparison log written by save_history.

    Returns an empty list when no path is given or the file does not exist.

    Raises:
        StorageError: If required columns are absent or a row is invalid
    """
    if path is None or not Path(path).exists():
        return []

    df = pd.read_csv(path, dtype={'winner_id': str, 'loser_id': str})
    missing_cols = set(HISTORY_COLUMNS) - set(df.columns)
    if missing_cols:
        raise StorageError(f"{path} is missing columns: {', '.join(sorted(missing_cols))}")
    if df.empty:
        return []

    try:
        timestamps = pd.to_datetime(df['timestamp'], utc=True, format='ISO8601')
    except (ValueError, TypeError) as e:
        raise StorageError(f"{path}: unreadable timestamp: {e}") from e
    upsets = df['upset'].astype(str).str.lower() == 'true'

    records = []
    rows = zip(df.to_dict('records'), timestamps, upsets)
    for line_no, (row, ts, upset) in enumerate(rows, start=2):
        if any(pd.isna(row[col]) for col in HISTORY_COLUMNS):
            raise StorageError(f"{path}:{line_no}: incomplete comparison record")
        records.append(ComparisonRecord(
            timestamp=ts.to_pydatetime(),
            winner_id=row['winner_id'],
            loser_id=row['loser_id'],
            winner_old_rating=row['winner_old_rating'],
            winner_new_rating=row['winner_new_rating'],
            loser_old_rating=row['loser_old_rating'],
            loser_new_rating=row['loser_new_rating'],
            expected_winner_score=row['expected_winner_score'],
            upset=bool(upset),
        ))

    logger.info(f"Loaded {len(records)} comparison records from {path}")
    return records
