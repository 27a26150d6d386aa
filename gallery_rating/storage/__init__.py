"""
Storage Seam

Modules:
- memory: Thread-safe in-memory store with versioned commits
- csv_store: CSV snapshot persistence
- transaction: apply_result_and_persist, recalibrate_store
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name in ("InMemoryEntityStore", "ComparisonRecord", "StorageError",
                "EntityNotFoundError", "DuplicateEntityError", "ConcurrentUpdateError"):
        from gallery_rating.storage import memory
        return getattr(memory, name)
    if name in ("CsvEntityStore", "load_history"):
        from gallery_rating.storage import csv_store
        return getattr(csv_store, name)
    if name in ("apply_result_and_persist", "recalibrate_store"):
        from gallery_rating.storage import transaction
        return getattr(transaction, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
