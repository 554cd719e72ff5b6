"""Padel set scoring.

Validates completed set scores (games per side) and folds up to three sets
into a match result. A set is won 6-0 through 6-5, or 7-5/7-6 after the
tiebreak range; a set that stopped early (e.g. 4-2) is accepted as long as
it is not level.
"""

from typing import Any, Iterable, List, NamedTuple, Optional, Tuple

MAX_SETS = 3
MAX_GAMES = 7
SET_GAMES = 6


class SetAggregate(NamedTuple):
    team1_sets: int
    team2_sets: int
    winner: int  # 0 undecided, 1 or 2
    is_valid: bool
    errors: List[str]
    needs_third_set: bool


def _is_int(value: Any) -> bool:
    # bool is a subclass of int; a checkbox is not a score
    return isinstance(value, int) and not isinstance(value, bool)


def set_violation(team1: Any, team2: Any) -> Optional[str]:
    """Return the rule a set score breaks, or ``None`` for a valid set."""

    if not _is_int(team1) or not _is_int(team2):
        return "scores must be whole numbers"
    if team1 < 0 or team2 < 0 or team1 > MAX_GAMES or team2 > MAX_GAMES:
        return f"scores must be between 0 and {MAX_GAMES}"
    if team1 == team2:
        return "a set cannot end level"

    high, low = max(team1, team2), min(team1, team2)
    if high == MAX_GAMES and low not in (5, 6):
        return "7 games is only reached from 5-5 or a 6-6 tiebreak (7-5 or 7-6)"
    if high == SET_GAMES and low > 5:
        return "6-6 goes to a tiebreak"
    return None


def validate_set(team1: int, team2: int) -> bool:
    """Return ``True`` if ``(team1, team2)`` is a valid finished set."""

    return set_violation(team1, team2) is None


def set_winner(team1: int, team2: int) -> int:
    if team1 > team2:
        return 1
    if team2 > team1:
        return 2
    return 0


def _pair(entry: Any) -> Optional[Tuple[Any, Any]]:
    """Normalise a set entry, returning ``None`` when the set is not present."""

    if entry is None:
        return None
    if isinstance(entry, (tuple, list)):
        if len(entry) != 2:
            return None
        a, b = entry
    elif isinstance(entry, dict):
        a, b = entry.get("team1"), entry.get("team2")
    else:
        a, b = getattr(entry, "team1", None), getattr(entry, "team2", None)
    if a is None or b is None:
        return None
    return a, b


def present_sets(sets: Iterable[Any]) -> List[Optional[Tuple[Any, Any]]]:
    return [_pair(entry) for entry in sets]


def aggregate(sets: Iterable[Any]) -> SetAggregate:
    """Fold a sequence of set scores into a match tally.

    ``sets`` holds ``(team1, team2)`` pairs, ``SetScore`` objects or ``None``
    for a set that was not played. Invalid sets are reported in ``errors``
    (tagged ``"Set N: ..."``) and left out of the tally; nothing is raised.
    """

    pairs = present_sets(sets)
    errors: List[str] = []
    team1_sets = team2_sets = 0

    for number, pair in enumerate(pairs, start=1):
        if pair is None:
            continue
        if number > MAX_SETS:
            errors.append(f"Set {number}: a match has at most {MAX_SETS} sets")
            continue
        if number == 2 and pairs[0] is None:
            errors.append("Set 2: set 1 must be entered first")
            continue
        if number == 3:
            if pairs[0] is None or pairs[1] is None:
                errors.append("Set 3: sets 1 and 2 must be entered first")
                continue
            if team1_sets != 1 or team2_sets != 1:
                errors.append("Set 3: only played when the first two sets are split")
                continue

        violation = set_violation(*pair)
        if violation is not None:
            errors.append(f"Set {number}: {violation}")
            continue

        side = set_winner(*pair)
        if side == 1:
            team1_sets += 1
        else:
            team2_sets += 1

    winner = set_winner(team1_sets, team2_sets)
    present_count = sum(1 for pair in pairs if pair is not None)
    needs_third_set = present_count == 2 and team1_sets == 1 and team2_sets == 1

    return SetAggregate(
        team1_sets=team1_sets,
        team2_sets=team2_sets,
        winner=winner,
        is_valid=not errors,
        errors=errors,
        needs_third_set=needs_third_set,
    )
