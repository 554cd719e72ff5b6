"""Post-match score confirmation.

Once the creator submits scores the match enters ``pending`` validation.
Each participant approves or rejects once. A single rejection disputes the
match straight away; approval by everyone, or the deadline passing without
a rejection, confirms it. Ratings are applied on the move to ``confirmed``
and only while ``rating_applied`` is still false.

Everything here is pure: functions take a ``MatchRecord`` plus the votes
already cast and describe the transition. Storing it atomically is the
caller's job (see ``services.lifecycle``).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Mapping, NamedTuple, Optional, Protocol

from ..config import CONFIRMATION_WINDOW_HOURS
from ..enums import MatchStatus, ValidationStatus, Vote
from ..schemas import MatchRecord
from ..time_utils import coerce_utc

CONFIRMABLE_STATUSES = {MatchStatus.NEEDS_CONFIRMATION, MatchStatus.COMPLETED}


class VoteOutcome(NamedTuple):
    accepted: bool
    message: str
    validation_status: ValidationStatus
    all_confirmed: bool
    apply_ratings: bool


class ConfirmationSummary(NamedTuple):
    validation_status: ValidationStatus
    all_confirmed: bool
    approved: int
    rejected: int
    outstanding: int
    total: int
    can_apply_ratings: bool


class ValidationWindow(NamedTuple):
    is_open: bool
    deadline: Optional[datetime]
    hours_remaining: int
    minutes_remaining: int
    status_text: str


class DisputeResolver(Protocol):
    """Administrative collaborator that settles disputed matches.

    Disputed matches never return to ``pending`` on their own; whoever
    implements this decides the final scores and re-opens or voids them.
    """

    async def resolve_dispute(self, match_id: str, resolution: str) -> None: ...


def _has_scores(match: MatchRecord) -> bool:
    first = match.set_score(1)
    return first is not None and first.is_present


def deadline_for(submitted_at: datetime, window_hours: Optional[float] = None) -> datetime:
    hours = CONFIRMATION_WINDOW_HOURS if window_hours is None else window_hours
    return coerce_utc(submitted_at) + timedelta(hours=hours)


def begin(
    match: MatchRecord, now: datetime, window_hours: Optional[float] = None
) -> Optional[tuple[ValidationStatus, datetime]]:
    """Return ``(pending, deadline)`` if ``match`` should start confirming.

    ``None`` means the match is not eligible: it has no scores, is not in a
    confirmable status, or validation already started.
    """

    if not _has_scores(match) or match.status not in CONFIRMABLE_STATUSES:
        return None
    if match.validation_status != ValidationStatus.NONE:
        return None
    return ValidationStatus.PENDING, deadline_for(now, window_hours)


def _refused(match: MatchRecord, message: str) -> VoteOutcome:
    return VoteOutcome(
        accepted=False,
        message=message,
        validation_status=match.validation_status,
        all_confirmed=match.all_confirmed,
        apply_ratings=False,
    )


def record_vote(
    match: MatchRecord,
    votes: Mapping[str, Vote],
    player_id: str,
    approve: bool,
    now: datetime,
) -> VoteOutcome:
    """Apply one participant's vote to the confirmation state.

    ``votes`` holds the votes cast before this one. A reject overrides any
    number of approvals. Once the deadline has passed no vote is taken;
    ``expire`` settles the match instead.
    """

    if match.validation_status != ValidationStatus.PENDING:
        return _refused(
            match, f"scores are not awaiting confirmation ({match.validation_status.value})"
        )
    if (
        match.validation_deadline is not None
        and match.validation_deadline <= coerce_utc(now)
    ):
        return _refused(match, "the confirmation window has closed")
    participants = match.participants
    if player_id not in participants:
        return _refused(match, "only match participants can confirm scores")
    if player_id in votes:
        return _refused(match, "player has already responded")

    if not approve:
        return VoteOutcome(
            accepted=True,
            message="scores disputed",
            validation_status=ValidationStatus.DISPUTED,
            all_confirmed=False,
            apply_ratings=False,
        )

    cast = dict(votes)
    cast[player_id] = Vote.APPROVE
    if all(cast.get(pid) == Vote.APPROVE for pid in participants):
        return VoteOutcome(
            accepted=True,
            message="all players confirmed",
            validation_status=ValidationStatus.CONFIRMED,
            all_confirmed=True,
            apply_ratings=not match.rating_applied,
        )

    waiting = sum(1 for pid in participants if pid not in cast)
    return VoteOutcome(
        accepted=True,
        message=f"confirmation recorded; waiting on {waiting} player(s)",
        validation_status=ValidationStatus.PENDING,
        all_confirmed=False,
        apply_ratings=False,
    )


def expire(
    match: MatchRecord, votes: Mapping[str, Vote], now: datetime
) -> Optional[VoteOutcome]:
    """Confirm a pending match whose deadline has passed without a rejection.

    Returns ``None`` when nothing should change.
    """

    if match.validation_status != ValidationStatus.PENDING:
        return None
    if match.validation_deadline is None or match.validation_deadline > coerce_utc(now):
        return None
    if any(v == Vote.REJECT for v in votes.values()):
        return VoteOutcome(True, "scores disputed", ValidationStatus.DISPUTED, False, False)
    return VoteOutcome(
        accepted=True,
        message="confirmation window expired without disputes",
        validation_status=ValidationStatus.CONFIRMED,
        all_confirmed=False,
        apply_ratings=not match.rating_applied,
    )


def should_apply_ratings(match: MatchRecord) -> bool:
    return match.validation_status == ValidationStatus.CONFIRMED and not match.rating_applied


def summarize(match: MatchRecord, votes: Mapping[str, Vote]) -> ConfirmationSummary:
    participants = match.participants
    approved = sum(1 for pid in participants if votes.get(pid) == Vote.APPROVE)
    rejected = sum(1 for pid in participants if votes.get(pid) == Vote.REJECT)
    return ConfirmationSummary(
        validation_status=match.validation_status,
        all_confirmed=match.all_confirmed,
        approved=approved,
        rejected=rejected,
        outstanding=len(participants) - approved - rejected,
        total=len(participants),
        can_apply_ratings=should_apply_ratings(match),
    )


def validation_window(deadline: Optional[datetime], now: datetime) -> ValidationWindow:
    """Describe how long participants still have to respond."""

    if deadline is None:
        return ValidationWindow(False, None, 0, 0, "No confirmation window")

    deadline = coerce_utc(deadline)
    remaining = deadline - coerce_utc(now)
    if remaining.total_seconds() <= 0:
        return ValidationWindow(False, deadline, 0, 0, "Confirmation window closed")

    total_minutes = int(remaining.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours >= 12:
        text = f"{hours} hours to respond"
    elif hours >= 1:
        text = f"{hours}h {minutes}m remaining"
    else:
        text = f"{minutes} minutes remaining"
    return ValidationWindow(True, deadline, hours, minutes, text)
