"""Player rating adjustment after a confirmed match.

This is a bounded, deterministic delta, not a Glicko/Elo implementation:

* ``delta = round(15 + min(|avg1 - avg2| * 0.1, 10) * margin)`` where
  ``margin`` is 1.2 for a straight-sets result (set difference >= 2) and
  0.8 otherwise;
* winners gain ``delta``, losers lose it, all clamped to [100, 3000];
* rating deviation and volatility are stored but passed through unchanged.

Existing ratings were produced by exactly this formula, so it must not be
"improved" without migrating stored values.
"""

import logging
import math
import uuid
from typing import NamedTuple, Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..enums import MatchStatus, ValidationStatus
from ..exceptions import MatchIntegrityError, MatchNotFound, PlayerNotFound, StateConflict
from ..models import (
    DEFAULT_RATING,
    DEFAULT_RATING_DEVIATION,
    DEFAULT_RATING_VOLATILITY,
    Match,
    Player,
    RatingChange,
)
from ..scoring.padel import aggregate
from .phase import integrity_warnings

logger = logging.getLogger(__name__)

BASE_CHANGE = 15.0
DIFF_FACTOR = 0.1
MAX_DIFF_BONUS = 10.0
WIDE_MARGIN_MULTIPLIER = 1.2
NARROW_MARGIN_MULTIPLIER = 0.8
WIDE_MARGIN_SETS = 2
MIN_RATING = 100.0
MAX_RATING = 3000.0

RATING_TIERS = (
    (1300.0, "Beginner"),
    (1500.0, "Intermediate"),
    (1700.0, "Advanced"),
    (1900.0, "Expert"),
    (2100.0, "Professional"),
)


class PlayerRating(NamedTuple):
    player_id: str
    rating: float
    deviation: float = DEFAULT_RATING_DEVIATION
    volatility: float = DEFAULT_RATING_VOLATILITY


class RatingAdjustment(NamedTuple):
    delta: int
    winner: int  # 0 when the sets were level and nothing changed
    team1: list[PlayerRating]
    team2: list[PlayerRating]


RatingInput = Union[PlayerRating, float, int]


def _as_rating(value: RatingInput) -> PlayerRating:
    if isinstance(value, PlayerRating):
        return value
    return PlayerRating(player_id="", rating=float(value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_rating(value: float) -> float:
    return max(MIN_RATING, min(MAX_RATING, value))


def rating_delta(team1_avg: float, team2_avg: float, set_difference: int) -> int:
    """Magnitude of the rating change for every player in the match."""

    rating_diff = abs(team1_avg - team2_avg)
    diff_multiplier = min(rating_diff * DIFF_FACTOR, MAX_DIFF_BONUS)
    if abs(set_difference) >= WIDE_MARGIN_SETS:
        margin_multiplier = WIDE_MARGIN_MULTIPLIER
    else:
        margin_multiplier = NARROW_MARGIN_MULTIPLIER
    return _round_half_up(BASE_CHANGE + diff_multiplier * margin_multiplier)


def adjust(
    team1_ratings: Sequence[RatingInput],
    team2_ratings: Sequence[RatingInput],
    team1_sets_won: int,
    team2_sets_won: int,
) -> RatingAdjustment:
    """Return updated ratings for all four players.

    Each team is a pair of ratings (``PlayerRating`` or plain numbers). The
    same ``delta`` is added to both winners and subtracted from both losers.
    """

    team1 = [_as_rating(r) for r in team1_ratings]
    team2 = [_as_rating(r) for r in team2_ratings]
    if len(team1) != 2 or len(team2) != 2:
        raise ValueError("each team needs exactly two ratings")

    if team1_sets_won == team2_sets_won:
        return RatingAdjustment(delta=0, winner=0, team1=team1, team2=team2)

    team1_avg = sum(p.rating for p in team1) / 2
    team2_avg = sum(p.rating for p in team2) / 2
    delta = rating_delta(team1_avg, team2_avg, team1_sets_won - team2_sets_won)
    winner = 1 if team1_sets_won > team2_sets_won else 2

    def _moved(player: PlayerRating, won: bool) -> PlayerRating:
        change = delta if won else -delta
        return player._replace(rating=clamp_rating(player.rating + change))

    return RatingAdjustment(
        delta=delta,
        winner=winner,
        team1=[_moved(p, winner == 1) for p in team1],
        team2=[_moved(p, winner == 2) for p in team2],
    )


def rating_description(rating: Optional[float]) -> str:
    """Skill tier name shown next to a rating."""

    value = DEFAULT_RATING if rating is None or math.isnan(rating) else rating
    for upper, label in RATING_TIERS:
        if value < upper:
            return label
    return "Elite"


def format_rating(rating: Optional[float]) -> str:
    if rating is None or math.isnan(rating):
        return str(int(DEFAULT_RATING))
    return str(_round_half_up(rating))


async def apply_match_ratings(
    session: AsyncSession, match_id: str
) -> Optional[RatingAdjustment]:
    """Apply the rating change for a confirmed match exactly once.

    ``rating_applied`` is claimed with a conditional update before players
    are touched, so a concurrent or repeated call is a no-op returning
    ``None``. The caller owns the transaction and commits.
    """

    m = await session.get(Match, match_id, populate_existing=True)
    if m is None:
        raise MatchNotFound(match_id)
    if m.rating_applied:
        logger.info("Ratings already applied for match %s", match_id)
        return None

    record = m.to_record()
    if record.status == MatchStatus.CANCELLED:
        raise StateConflict(match_id, "match is cancelled")
    if record.validation_status != ValidationStatus.CONFIRMED:
        raise StateConflict(
            match_id,
            f"ratings need confirmed scores (validation is {record.validation_status.value})",
        )

    tally = aggregate(record.sets)
    warnings = integrity_warnings(record, tally.winner)
    if warnings or not tally.is_valid:
        raise MatchIntegrityError(match_id, warnings or tally.errors)

    slots = record.slots
    if not all(slots):
        raise StateConflict(match_id, "ratings need four players")

    rows = (
        await session.execute(select(Player).where(Player.id.in_(slots)))
    ).scalars().all()
    players = {p.id: p for p in rows}
    for pid in slots:
        if pid not in players:
            raise PlayerNotFound(pid)

    def _current(pid: str) -> PlayerRating:
        p = players[pid]
        return PlayerRating(pid, p.rating, p.rating_deviation, p.rating_volatility)

    adjustment = adjust(
        [_current(slots[0]), _current(slots[1])],
        [_current(slots[2]), _current(slots[3])],
        tally.team1_sets,
        tally.team2_sets,
    )

    claim = await session.execute(
        update(Match)
        .where(Match.id == match_id, Match.rating_applied.is_(False))
        .values(rating_applied=True)
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        logger.info("Ratings for match %s were applied concurrently", match_id)
        return None
    m.rating_applied = True

    for new in adjustment.team1 + adjustment.team2:
        p = players[new.player_id]
        session.add(
            RatingChange(
                id=uuid.uuid4().hex,
                match_id=match_id,
                player_id=p.id,
                rating_before=p.rating,
                rating_after=new.rating,
                rd_before=p.rating_deviation,
                rd_after=new.deviation,
                vol_before=p.rating_volatility,
                vol_after=new.volatility,
            )
        )
        p.rating = new.rating

    logger.info(
        "Applied ratings for match %s: team %s won, delta %d",
        match_id,
        adjustment.winner,
        adjustment.delta,
    )
    return adjustment
