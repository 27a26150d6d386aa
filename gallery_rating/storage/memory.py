"""
In-Memory Entity Store

Reference implementation of the storage seam the engine is called through.
It keeps, per entity id:
- the current RatedEntity snapshot and a version counter
- the most recent opponents (bounded)
- a lock, so at most one comparison touching the id is in flight

and an append-only log of recorded comparisons.

Programmatic usage:
    store = InMemoryEntityStore()
    store.add(RatedEntity.new("img-1", owner_id="gallery-a"))
"""

import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from gallery_rating.config import RECENT_OPPONENTS_LIMIT
from gallery_rating.elo.models import RatedEntity
from gallery_rating.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


class StorageError(Exception):
    """Base exception for storage errors"""
    pass


class EntityNotFoundError(StorageError, KeyError):
    """Raised when an entity id is not in the store"""
    pass


class DuplicateEntityError(StorageError):
    """Raised when adding an entity id that already exists"""
    pass


class ConcurrentUpdateError(StorageError):
    """Raised when a commit finds a version other than the one it read"""
    pass


@dataclass(frozen=True)
class ComparisonRecord:
    """One recorded comparison, as logged by the store."""

    timestamp: datetime
    winner_id: str
    loser_id: str
    winner_old_rating: float
    winner_new_rating: float
    loser_old_rating: float
    loser_new_rating: float
    expected_winner_score: float
    upset: bool


class InMemoryEntityStore:
    """Thread-safe dict-backed store with per-entity locks and versioned commits."""

    def __init__(self, entities=None, history=None,
                 recent_opponents_limit: int = RECENT_OPPONENTS_LIMIT):
        self._entities: dict[str, RatedEntity] = {}
        self._versions: dict[str, int] = {}
        self._opponents: dict[str, deque] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._history: list[ComparisonRecord] = []
        self._recent_opponents_limit = recent_opponents_limit

        for entity in entities or ():
            self.add(entity)
        for record in history or ():
            self._history.append(record)
            for own_id, other_id in ((record.winner_id, record.loser_id),
                                     (record.loser_id, record.winner_id)):
                if own_id in self._opponents:
                    self._opponents[own_id].append(other_id)

    def __len__(self):
        return len(self._entities)

    def __contains__(self, entity_id):
        return entity_id in self._entities

    # --- Reads ---
    def add(self, entity: RatedEntity) -> None:
        if not entity.entity_id:
            raise StorageError("Stored entities need an entity_id")
        with self._registry_lock:
            if entity.entity_id in self._entities:
                raise DuplicateEntityError(f"Entity already stored: {entity.entity_id}")
            self._entities[entity.entity_id] = entity
            self._versions[entity.entity_id] = 0
            self._opponents[entity.entity_id] = deque(maxlen=self._recent_opponents_limit)
            self._locks[entity.entity_id] = threading.Lock()

    def get(self, entity_id: str) -> RatedEntity:
        try:
            return self._entities[entity_id]
        except KeyError:
            raise EntityNotFoundError(entity_id) from None

    def get_or_create(self, entity_id: str, owner_id: str | None = None) -> RatedEntity:
        """Return the stored entity, adding a fresh one first if it is unknown."""
        with self._registry_lock:
            known = entity_id in self._entities
        if not known:
            try:
                self.add(RatedEntity.new(entity_id, owner_id=owner_id))
            except DuplicateEntityError:
                pass  # Another thread created it first
        return self.get(entity_id)

    def version(self, entity_id: str) -> int:
        try:
            return self._versions[entity_id]
        except KeyError:
            raise EntityNotFoundError(entity_id) from None

    def entities(self) -> list[RatedEntity]:
        with self._registry_lock:
            return list(self._entities.values())

    def members_of(self, owner_id: str) -> list[RatedEntity]:
        return [e for e in self.entities() if e.owner_id == owner_id]

    def recent_opponents(self, entity_id: str) -> list[str]:
        """Most recent opponents, oldest first."""
        self.get(entity_id)
        return list(self._opponents[entity_id])

    def history(self) -> list[ComparisonRecord]:
        return list(self._history)

    # --- Locking ---
    @contextmanager
    def lock_pair(self, first_id: str, second_id: str):
        """
        Hold the locks of both entities.

        Locks are taken in sorted id order so two comparisons sharing an
        entity can never deadlock.
        """
        self.get(first_id)
        self.get(second_id)
        with self._hold(sorted({first_id, second_id})):
            yield

    @contextmanager
    def lock_all(self):
        """
        Hold the lock of every entity known when called, in sorted id order.

        Yields:
            Sorted list of the locked ids
        """
        with self._registry_lock:
            ordered = sorted(self._locks)
        with self._hold(ordered):
            yield ordered

    @contextmanager
    def _hold(self, ordered_ids):
        acquired = []
        try:
            for entity_id in ordered_ids:
                lock = self._locks[entity_id]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    # --- Writes ---
    def commit_pair(self, winner: RatedEntity, loser: RatedEntity,
                    expected_versions: tuple[int, int], record: ComparisonRecord) -> None:
        """
        Persist both post-match states and the comparison record together.

        Raises:
            ConcurrentUpdateError: If either entity changed since it was read
        """
        with self._registry_lock:
            current = (self._versions[winner.entity_id], self._versions[loser.entity_id])
            if current != tuple(expected_versions):
                raise ConcurrentUpdateError(
                    f"{winner.entity_id}/{loser.entity_id} changed since read "
                    f"(expected versions {tuple(expected_versions)}, found {current})"
                )
            self._entities[winner.entity_id] = winner
            self._entities[loser.entity_id] = loser
            self._versions[winner.entity_id] += 1
            self._versions[loser.entity_id] += 1
            self._opponents[winner.entity_id].append(loser.entity_id)
            self._opponents[loser.entity_id].append(winner.entity_id)
            self._history.append(record)

    def reset_all(self) -> int:
        """
        Return every entity to the fresh, unrated state and clear the logs.

        Returns:
            Number of entities reset
        """
        with self._registry_lock:
            for entity_id, entity in self._entities.items():
                self._entities[entity_id] = RatedEntity.new(entity_id, owner_id=entity.owner_id)
                self._versions[entity_id] += 1
                self._opponents[entity_id].clear()
            self._history.clear()
            count = len(self._entities)
        logger.info(f"Reset {count} entities to the base rating")
        return count

    def replace_all(self, entities: dict[str, RatedEntity],
                    expected_versions: dict[str, int] | None = None) -> None:
        """
        Overwrite known entities in bulk (e.g. after recalibration).

        Args:
            entities: dict of entity_id -> new snapshot
            expected_versions: Versions the caller read; when given, every
                replaced id must still be at that version

        Raises:
            EntityNotFoundError: If an id is not stored
            ConcurrentUpdateError: If an entity changed since it was read
        """
        with self._registry_lock:
            unknown = set(entities) - set(self._entities)
            if unknown:
                raise EntityNotFoundError(', '.join(sorted(unknown)))
            if expected_versions is not None:
                stale = sorted(
                    entity_id for entity_id in entities
                    if self._versions[entity_id] != expected_versions.get(entity_id)
                )
                if stale:
                    raise ConcurrentUpdateError(f"Changed since read: {', '.join(stale)}")
            for entity_id, entity in entities.items():
                self._entities[entity_id] = entity
                self._versions[entity_id] += 1
