"""
Central configuration for the Gallery Rating Engine.

All shared constants are defined here. The rating constants seed
``DEFAULT_CONFIG``; the engine and scorers only ever read the frozen
``RatingConfig`` they are handed, so alternative tunings can live side by side.
"""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path

# --- Project Paths ---
PROJECT_ROOT = Path(__file__).parent.parent
DATA_FOLDER = PROJECT_ROOT / "data"
OUTPUT_FOLDER = DATA_FOLDER / "processed"

# Input file patterns
COMPARISONS_PATTERN = "comparisons_*.csv"
ENTITIES_PATTERN = "entities_*.csv"

# --- Rating Bounds ---
BASE_RATING = 1500  # Starting rating for every new image
RATING_FLOOR = 800
RATING_CEILING = 2400

# --- Rating Deviation (uncertainty) ---
RD_INITIAL = 250
RD_MIN = 50
RD_MAX = 350
RD_DECAY_PER_MATCH = 10

# --- K-factor Tiers ---
# (matches below, base K); entities past the last tier use K_ESTABLISHED
K_TIERS = ((5, 40), (15, 32), (30, 24))
K_ESTABLISHED = 16
K_UNCERTAINTY_WEIGHT = 0.25

# Rating zones: (threshold, multiplier), high zones checked first
K_HIGH_ZONES = ((2200, 0.85), (1900, 0.92))
K_LOW_ZONE = (1000, 0.9)

# --- Surprise & Momentum ---
UPSET_FAVORITE_SHRINK = 0.3
UPSET_FAVORITE_FLOOR = 0.85
UPSET_FLAG_THRESHOLD = 1.1
STREAK_MIN_MATCHES = 5
STREAK_HIGH_WIN_RATE = 0.75
STREAK_LOW_WIN_RATE = 0.25
STREAK_WEIGHT = 0.2  # 0.25 win-rate excess * 0.2 -> max 1.05x

# --- Movement Guarantees ---
MIN_RATING_CHANGE = 2
PROVISIONAL_MATCHES = 15
PROVISIONAL_BOOST = 8
CLUSTER_DISTANCE = 50
CLUSTER_PUSH_DIVISOR = 15

# --- Aggregation ---
WILSON_Z = 1.96
COMPOSITE_TOP_N = 5
COMPOSITE_DECAY = 0.7
COMPOSITE_CONFIDENCE_MATCHES = 30
WILSON_SCALE = 500
RATING_NORM_OFFSET = 600
RATING_NORM_DIVISOR = 2.2
RATING_NORM_MAX = 1000

# --- Rating Tiers (display only) ---
TIER_THRESHOLDS = (
    ("LEGENDARY", 2200),
    ("ELITE", 1900),
    ("EXPERT", 1700),
    ("ADVANCED", 1500),
    ("INTERMEDIATE", 1300),
    ("NOVICE", 1000),
)

# --- Leaderboards ---
LEADERBOARD_LIMIT = 50
GALLERY_MIN_MATCHES = 5  # Galleries need this many votes to be listed

# --- History ---
RECENT_OPPONENTS_LIMIT = 10

# --- Recalibration ---
RECALIBRATION_CONFIDENCE_MATCHES = 20
RECALIBRATION_SPREAD = 800
RECALIBRATION_MIN_DEVIATION = 10
RECALIBRATION_HISTORY_WEIGHT = 0.3
RECALIBRATION_EDGE_MATCHES = 10
RECALIBRATION_HIGH_WIN_RATE = 0.7
RECALIBRATION_LOW_WIN_RATE = 0.3
RECALIBRATION_EDGE_SCALE = 300


@dataclass(frozen=True)
class RatingConfig:
    """Immutable tuning for the rating engine and scorers."""

    base_rating: float = BASE_RATING
    rating_floor: float = RATING_FLOOR
    rating_ceiling: float = RATING_CEILING

    rd_initial: float = RD_INITIAL
    rd_min: float = RD_MIN
    rd_max: float = RD_MAX
    rd_decay_per_match: float = RD_DECAY_PER_MATCH

    k_tiers: tuple[tuple[int, float], ...] = K_TIERS
    k_established: float = K_ESTABLISHED
    k_uncertainty_weight: float = K_UNCERTAINTY_WEIGHT
    k_high_zones: tuple[tuple[float, float], ...] = K_HIGH_ZONES
    k_low_zone: tuple[float, float] = K_LOW_ZONE

    upset_favorite_shrink: float = UPSET_FAVORITE_SHRINK
    upset_favorite_floor: float = UPSET_FAVORITE_FLOOR
    upset_flag_threshold: float = UPSET_FLAG_THRESHOLD
    streak_min_matches: int = STREAK_MIN_MATCHES
    streak_high_win_rate: float = STREAK_HIGH_WIN_RATE
    streak_low_win_rate: float = STREAK_LOW_WIN_RATE
    streak_weight: float = STREAK_WEIGHT

    min_rating_change: int = MIN_RATING_CHANGE
    provisional_matches: int = PROVISIONAL_MATCHES
    provisional_boost: float = PROVISIONAL_BOOST
    cluster_distance: float = CLUSTER_DISTANCE
    cluster_push_divisor: float = CLUSTER_PUSH_DIVISOR

    wilson_z: float = WILSON_Z
    composite_top_n: int = COMPOSITE_TOP_N
    composite_decay: float = COMPOSITE_DECAY
    composite_confidence_matches: int = COMPOSITE_CONFIDENCE_MATCHES
    wilson_scale: float = WILSON_SCALE
    rating_norm_offset: float = RATING_NORM_OFFSET
    rating_norm_divisor: float = RATING_NORM_DIVISOR
    rating_norm_max: float = RATING_NORM_MAX

    recalibration_confidence_matches: int = RECALIBRATION_CONFIDENCE_MATCHES
    recalibration_spread: float = RECALIBRATION_SPREAD
    recalibration_min_deviation: float = RECALIBRATION_MIN_DEVIATION
    recalibration_history_weight: float = RECALIBRATION_HISTORY_WEIGHT
    recalibration_edge_matches: int = RECALIBRATION_EDGE_MATCHES
    recalibration_high_win_rate: float = RECALIBRATION_HIGH_WIN_RATE
    recalibration_low_win_rate: float = RECALIBRATION_LOW_WIN_RATE
    recalibration_edge_scale: float = RECALIBRATION_EDGE_SCALE

    tier_thresholds: tuple[tuple[str, float], ...] = field(default=TIER_THRESHOLDS)

    def __post_init__(self):
        if not self.rating_floor <= self.base_rating <= self.rating_ceiling:
            raise ValueError(
                f"base_rating {self.base_rating} must lie within "
                f"[{self.rating_floor}, {self.rating_ceiling}]"
            )
        if self.rating_floor >= self.rating_ceiling:
            raise ValueError("rating_floor must be below rating_ceiling")
        if not self.rd_min <= self.rd_initial <= self.rd_max:
            raise ValueError(
                f"rd_initial {self.rd_initial} must lie within [{self.rd_min}, {self.rd_max}]"
            )
        if self.rd_initial == self.rd_min:
            # Uncertainty multiplier divides by this span
            raise ValueError("rd_initial must be above rd_min")
        tier_limits = [limit for limit, _ in self.k_tiers]
        if tier_limits != sorted(tier_limits):
            raise ValueError("k_tiers must be ordered by ascending match count")
        tier_ratings = [threshold for _, threshold in self.tier_thresholds]
        if tier_ratings != sorted(tier_ratings, reverse=True):
            raise ValueError("tier_thresholds must be ordered from highest to lowest")
        if self.composite_top_n < 1:
            raise ValueError("composite_top_n must be at least 1")
        if self.recalibration_confidence_matches < 1:
            raise ValueError("recalibration_confidence_matches must be at least 1")

    def with_overrides(self, **changes) -> "RatingConfig":
        """Return a copy with ``changes`` applied (validated like the original)."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **changes)


DEFAULT_CONFIG = RatingConfig()
