from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

from ..scoring.padel import MAX_SETS, SetAggregate, aggregate


class ValidationError(Exception):
    """Raised when submitted set scores or slots are invalid."""

    def __init__(self, detail: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.errors = list(errors) if errors else [detail]


class ValidatedScores(NamedTuple):
    sets: List[Tuple[int, int]]
    tally: SetAggregate


def _score_value(value: Any, label: str) -> int:
    # Reject booleans explicitly (bool is a subclass of int in Python)
    if isinstance(value, bool):
        raise ValidationError(f"{label} scores must be integers (not booleans).")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{label} scores must be whole numbers.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} scores must be integers.")


def normalize_sets(sets: Any) -> List[Optional[Tuple[int, int]]]:
    """Turn a raw payload into ``(team1, team2)`` pairs, ``None`` for blanks.

    Each entry may be ``[6, 4]``, ``{"team1": 6, "team2": 4}``,
    ``{"A": 6, "B": 4}`` or ``None``.
    """

    if not isinstance(sets, (list, tuple)) or len(sets) == 0:
        raise ValidationError("At least one set is required.")
    if len(sets) > MAX_SETS:
        raise ValidationError(f"Too many sets. Max allowed is {MAX_SETS}.")

    normalized: List[Optional[Tuple[int, int]]] = []
    for i, s in enumerate(sets, start=1):
        label = f"Set {i}:"
        if s is None:
            normalized.append(None)
            continue
        if isinstance(s, dict):
            a = s.get("team1", s.get("A"))
            b = s.get("team2", s.get("B"))
        elif isinstance(s, (list, tuple)) and len(s) == 2:
            a, b = s
        elif hasattr(s, "team1") and hasattr(s, "team2"):
            a, b = s.team1, s.team2
        else:
            raise ValidationError(f"{label} must be a pair of scores.")
        if a is None and b is None:
            normalized.append(None)
            continue
        if a is None or b is None:
            raise ValidationError(f"{label} both teams need a score.")
        normalized.append((_score_value(a, label), _score_value(b, label)))
    return normalized


def validate_set_scores(sets: Any) -> ValidatedScores:
    """Validate a complete score submission.

    All rule violations are collected before raising so the submitter sees
    every bad set at once. A 1-1 split without a third set is incomplete.
    """

    normalized = normalize_sets(sets)
    tally = aggregate(normalized)
    errors = list(tally.errors)
    if normalized[0] is None:
        errors.insert(0, "Set 1: a score is required")
    if tally.needs_third_set:
        errors.append("Set 3: required when the first two sets are split")

    if errors:
        raise ValidationError("; ".join(errors), errors)

    present = [pair for pair in normalized if pair is not None]
    return ValidatedScores(sets=present, tally=tally)


def validate_slots(player_ids: Sequence[Optional[str]]) -> None:
    """A player may occupy only one slot of a match."""

    if len(player_ids) > 4:
        raise ValidationError("A match has at most 4 players.")
    seen = set()
    for slot, pid in enumerate(player_ids, start=1):
        if not pid:
            continue
        if pid in seen:
            raise ValidationError(f"Player '{pid}' already occupies another slot (slot {slot}).")
        seen.add(pid)
