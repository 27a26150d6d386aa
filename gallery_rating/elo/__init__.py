"""
Pairwise Rating System

Modules:
- models: Rated entity, match result and composite score contracts
- engine: Pairwise rating update engine
- aggregation: Wilson score, gallery composite score, leaderboards
- recalibration: Batch rating redistribution
- replay: Rebuild ratings from a comparison log
"""

_EXPORTS = {
    "RatedEntity": "gallery_rating.elo.models",
    "MatchResult": "gallery_rating.elo.models",
    "MatchMeta": "gallery_rating.elo.models",
    "CompositeScore": "gallery_rating.elo.models",
    "InvalidEntityState": "gallery_rating.elo.models",
    "RatingTier": "gallery_rating.elo.models",
    "RatingEngine": "gallery_rating.elo.engine",
    "apply_result": "gallery_rating.elo.engine",
    "expected_score": "gallery_rating.elo.engine",
    "match_quality": "gallery_rating.elo.engine",
    "rating_tier": "gallery_rating.elo.engine",
    "wilson_lower_bound": "gallery_rating.elo.aggregation",
    "composite_score": "gallery_rating.elo.aggregation",
    "build_leaderboard": "gallery_rating.elo.aggregation",
    "build_gallery_leaderboard": "gallery_rating.elo.aggregation",
    "recalibrate_rating": "gallery_rating.elo.recalibration",
    "recalibrate_ratings": "gallery_rating.elo.recalibration",
    "replay_comparisons": "gallery_rating.elo.replay",
    "run_replay": "gallery_rating.elo.replay",
}


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "run_replay":
        from gallery_rating.elo.replay import main
        return main
    if name in _EXPORTS:
        import importlib
        return getattr(importlib.import_module(_EXPORTS[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
