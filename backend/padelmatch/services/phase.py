"""Match phase and viewer permissions.

Every caller that needs to know "what is this match doing right now and what
may this player do with it" goes through :func:`resolve`. The result is never
stored: it depends on ``now`` and on who is looking.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..config import CANCEL_WINDOW_HOURS
from ..enums import MatchStatus, Phase
from ..exceptions import DataIntegrityWarning
from ..schemas import MatchRecord, MatchState
from ..scoring.padel import aggregate
from ..time_utils import coerce_utc, hours_between

logger = logging.getLogger(__name__)


def completion_reference(match: MatchRecord) -> datetime:
    """Instant the match counts as finished: its end time, else its start."""

    return match.end_time or match.start_time


def integrity_warnings(match: MatchRecord, computed_winner: int) -> list[str]:
    """Describe contradictions between stored fields and the computed result."""

    warnings: list[str] = []
    if (
        match.winner_team is not None
        and computed_winner
        and match.winner_team != computed_winner
    ):
        warnings.append(
            f"stored winner_team={match.winner_team} but sets favour team {computed_winner}"
        )
    first = match.set_score(1)
    has_scores = first is not None and first.is_present
    if match.status == MatchStatus.COMPLETED and not has_scores:
        warnings.append("status is COMPLETED but set 1 is missing")
    return warnings


def resolve(
    match: MatchRecord,
    now: datetime,
    viewer_id: Optional[str],
    *,
    cancel_window_hours: Optional[float] = None,
) -> MatchState:
    """Classify ``match`` at ``now`` and derive what ``viewer_id`` may do.

    Never raises for well-formed records. When the stored ``winner_team``
    disagrees with the set tally the stored value is used and the
    discrepancy is logged and returned in ``warnings``.
    """

    now = coerce_utc(now)
    window = CANCEL_WINDOW_HOURS if cancel_window_hours is None else cancel_window_hours

    is_future = match.start_time > now
    if match.end_time is not None:
        is_past = match.end_time < now
    else:
        is_past = match.start_time < now

    tally = aggregate(match.sets)
    first = match.set_score(1)
    has_scores = first is not None and first.is_present
    cancelled = match.status == MatchStatus.CANCELLED
    needs_scores = is_past and not has_scores and not cancelled

    if cancelled:
        phase = Phase.CANCELLED
    elif has_scores:
        phase = Phase.COMPLETED
    elif is_past:
        phase = Phase.ACTIVE
    else:
        phase = Phase.UPCOMING

    warnings = integrity_warnings(match, tally.winner)
    for message in warnings:
        logger.warning(
            "Data integrity issue on match %s: %s",
            match.id,
            message,
            extra={"category": DataIntegrityWarning.__name__},
        )

    winner = match.winner_team if match.winner_team is not None else tally.winner

    user_team = match.team_of(viewer_id)
    participating = user_team is not None
    is_creator = bool(viewer_id) and viewer_id == match.creator_id

    hours_since = None if is_future else hours_between(now, completion_reference(match))

    can_join = is_future and not participating and bool(match.open_slots)
    can_enter_scores = is_creator and needs_scores
    can_cancel = (
        is_creator
        and not cancelled
        and (is_future or (hours_since is not None and hours_since < window))
    )

    user_won: Optional[bool] = None
    if participating and winner:
        user_won = user_team == winner

    return MatchState(
        is_future=is_future,
        is_past=is_past,
        has_scores=has_scores,
        needs_scores=needs_scores,
        phase=phase,
        user_participating=participating,
        user_team=user_team,
        is_creator=is_creator,
        can_join=can_join,
        can_enter_scores=can_enter_scores,
        can_cancel=can_cancel,
        user_won=user_won,
        team1_sets=tally.team1_sets,
        team2_sets=tally.team2_sets,
        winner=winner,
        needs_third_set=tally.needs_third_set,
        hours_since_completion=hours_since,
        warnings=warnings,
    )
