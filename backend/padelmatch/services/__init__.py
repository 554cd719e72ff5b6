"""Match engine services: pure rules plus the stored transitions built on them."""

from .validation import ValidationError, validate_set_scores, validate_slots
from .phase import resolve
from .rating import adjust, apply_match_ratings, rating_description
from .stats import compute_streaks, player_record

__all__ = [
    "validate_set_scores",
    "validate_slots",
    "ValidationError",
    "resolve",
    "adjust",
    "apply_match_ratings",
    "rating_description",
    "compute_streaks",
    "player_record",
]
