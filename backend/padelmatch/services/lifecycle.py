"""Stored match transitions.

Every write is a conditional ``UPDATE ... WHERE`` on the state the caller
observed; when no row matches, someone else moved the match first and
``StateConflict`` is raised instead of overwriting their change. Functions
commit their own transaction.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..enums import MatchStatus, ValidationStatus, Vote
from ..exceptions import (
    DomainException,
    MatchForbidden,
    MatchIntegrityError,
    MatchNotFound,
    PlayerNotFound,
    StateConflict,
)
from ..models import Match, MatchConfirmation, Player
from ..schemas import MatchRecord, SetScore
from ..scoring.padel import aggregate
from ..time_utils import to_naive_utc
from . import confirmation
from .phase import integrity_warnings, resolve
from .rating import apply_match_ratings
from .validation import validate_set_scores, validate_slots

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = {
    MatchStatus.PENDING,
    MatchStatus.RECRUITING,
    MatchStatus.NEEDS_CONFIRMATION,
}

TEAM_SLOTS = {1: (1, 2), 2: (3, 4)}


class VoteResult(NamedTuple):
    outcome: confirmation.VoteOutcome
    ratings_applied: bool


class ProcessingResult(NamedTuple):
    processed: int
    confirmed_applied: int
    expired_applied: int
    errors: List[str]


def _conflict(match_id: str, detail: str) -> StateConflict:
    logger.warning("Rejected transition on match %s: %s", match_id, detail)
    return StateConflict(match_id, detail)


def _require_consistent(record: MatchRecord) -> None:
    warnings = integrity_warnings(record, aggregate(record.sets).winner)
    if warnings:
        logger.warning(
            "Refusing to write match %s until it is reconciled: %s",
            record.id,
            "; ".join(warnings),
        )
        raise MatchIntegrityError(record.id, warnings)


async def get_match(session: AsyncSession, match_id: str) -> Match:
    m = await session.get(Match, match_id, populate_existing=True)
    if m is None:
        raise MatchNotFound(match_id)
    return m


async def load_votes(session: AsyncSession, match_id: str) -> Dict[str, Vote]:
    rows = (
        await session.execute(
            select(MatchConfirmation).where(MatchConfirmation.match_id == match_id)
        )
    ).scalars().all()
    return {row.player_id: Vote(row.vote) for row in rows}


async def load_player_matches(session: AsyncSession, player_id: str) -> List[MatchRecord]:
    rows = (
        await session.execute(
            select(Match).where(
                or_(
                    Match.player1_id == player_id,
                    Match.player2_id == player_id,
                    Match.player3_id == player_id,
                    Match.player4_id == player_id,
                )
            )
        )
    ).scalars().all()
    return [m.to_record() for m in rows]


async def _ensure_players(session: AsyncSession, player_ids: Sequence[str]) -> None:
    found = set(
        (
            await session.execute(select(Player.id).where(Player.id.in_(player_ids)))
        ).scalars().all()
    )
    for pid in player_ids:
        if pid not in found:
            raise PlayerNotFound(pid)


async def _conditional_update(session: AsyncSession, match_id: str, stmt, detail: str) -> None:
    result = await session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0:
        await session.rollback()
        raise _conflict(match_id, detail)


async def create_match(
    session: AsyncSession,
    player_ids: Sequence[Optional[str]],
    start_time: datetime,
    end_time: Optional[datetime] = None,
    is_public: bool = False,
) -> Match:
    """Schedule a match; slot 1 is the creator."""

    validate_slots(player_ids)
    slots = list(player_ids) + [None] * (4 - len(player_ids))
    if not slots[0]:
        raise MatchForbidden("slot 1 must hold the match creator")
    await _ensure_players(session, [pid for pid in slots if pid])

    has_open_slot = not all(slots)
    status = MatchStatus.RECRUITING if is_public and has_open_slot else MatchStatus.PENDING
    m = Match(
        id=uuid.uuid4().hex,
        player1_id=slots[0],
        player2_id=slots[1],
        player3_id=slots[2],
        player4_id=slots[3],
        start_time=to_naive_utc(start_time),
        end_time=to_naive_utc(end_time),
        status=int(status),
        is_public=is_public,
        validation_status=ValidationStatus.NONE.value,
    )
    session.add(m)
    await session.commit()
    await session.refresh(m)
    logger.info("Created match %s by %s (%s)", m.id, slots[0], status.name)
    return m


async def join_match(
    session: AsyncSession,
    match_id: str,
    player_id: str,
    now: datetime,
    team: Optional[int] = None,
) -> Match:
    """Put ``player_id`` into the first open slot, on ``team`` when given."""

    m = await get_match(session, match_id)
    await _ensure_players(session, [player_id])
    record = m.to_record()
    _require_consistent(record)
    state = resolve(record, now, player_id)

    if state.user_participating:
        raise _conflict(match_id, "player is already in this match")
    if not state.can_join:
        raise _conflict(match_id, "match is not open for joining")

    open_slots = record.open_slots
    if team is not None:
        open_slots = [slot for slot in open_slots if slot in TEAM_SLOTS[team]]
        if not open_slots:
            raise _conflict(match_id, f"team {team} is full")
    slot = open_slots[0]

    column = getattr(Match, f"player{slot}_id")
    values: Dict[str, Any] = {f"player{slot}_id": player_id}
    if len(record.open_slots) == 1 and record.status == MatchStatus.RECRUITING:
        values["status"] = int(MatchStatus.PENDING)

    stmt = (
        update(Match)
        .where(
            Match.id == match_id,
            column.is_(None),
            Match.status == int(record.status),
        )
        .values(**values)
    )
    await _conditional_update(session, match_id, stmt, f"slot {slot} was taken")
    await session.commit()
    await session.refresh(m)
    logger.info("Player %s joined match %s in slot %d", player_id, match_id, slot)
    return m


async def submit_scores(
    session: AsyncSession,
    match_id: str,
    player_id: str,
    sets: Any,
    now: datetime,
) -> Match:
    """Store the creator's set scores and open the confirmation window."""

    m = await get_match(session, match_id)
    record = m.to_record()
    _require_consistent(record)
    state = resolve(record, now, player_id)

    if not state.is_creator:
        raise MatchForbidden("only the match creator can enter scores")
    if not state.can_enter_scores:
        if record.status == MatchStatus.CANCELLED:
            raise _conflict(match_id, "match is cancelled")
        if state.has_scores:
            raise _conflict(match_id, "scores were already submitted")
        raise _conflict(match_id, "match has not finished yet")
    if record.open_slots:
        raise _conflict(match_id, "scores need four players")

    validated = validate_set_scores(sets)
    padded = validated.sets + [(None, None)] * (3 - len(validated.sets))
    submitted = record.model_copy(
        update={
            "sets": [SetScore(team1=a, team2=b) for a, b in validated.sets],
            "status": MatchStatus.NEEDS_CONFIRMATION,
        }
    )
    begun = confirmation.begin(submitted, now)
    if begun is None:
        raise _conflict(match_id, f"validation is already {record.validation_status.value}")
    validation_status, deadline = begun

    stmt = (
        update(Match)
        .where(
            Match.id == match_id,
            Match.status == int(record.status),
            Match.team1_score_set1.is_(None),
            Match.validation_status == ValidationStatus.NONE.value,
        )
        .values(
            team1_score_set1=padded[0][0],
            team2_score_set1=padded[0][1],
            team1_score_set2=padded[1][0],
            team2_score_set2=padded[1][1],
            team1_score_set3=padded[2][0],
            team2_score_set3=padded[2][1],
            winner_team=validated.tally.winner,
            status=int(MatchStatus.NEEDS_CONFIRMATION),
            validation_status=validation_status.value,
            validation_deadline=to_naive_utc(deadline),
            all_confirmed=False,
            scores_submitted_at=to_naive_utc(now),
        )
    )
    await _conditional_update(session, match_id, stmt, "scores were submitted concurrently")
    await session.commit()
    await session.refresh(m)
    logger.info(
        "Scores submitted for match %s: team %d won %d-%d, confirm by %s",
        match_id,
        validated.tally.winner,
        validated.tally.team1_sets,
        validated.tally.team2_sets,
        deadline.isoformat(),
    )
    return m


async def _confirm(session: AsyncSession, m: Match, all_confirmed: bool) -> bool:
    """Move a pending match to confirmed-completed and apply ratings."""

    stmt = (
        update(Match)
        .where(
            Match.id == m.id,
            Match.validation_status == ValidationStatus.PENDING.value,
        )
        .values(
            status=int(MatchStatus.COMPLETED),
            validation_status=ValidationStatus.CONFIRMED.value,
            all_confirmed=all_confirmed,
        )
    )
    await _conditional_update(session, m.id, stmt, "confirmation already settled")
    await session.refresh(m)
    adjustment = await apply_match_ratings(session, m.id)
    return adjustment is not None


async def _dispute(session: AsyncSession, m: Match, now: datetime) -> None:
    stmt = (
        update(Match)
        .where(
            Match.id == m.id,
            Match.validation_status == ValidationStatus.PENDING.value,
        )
        .values(
            validation_status=ValidationStatus.DISPUTED.value,
            all_confirmed=False,
            disputed_at=to_naive_utc(now),
        )
    )
    await _conditional_update(session, m.id, stmt, "confirmation already settled")


async def cast_vote(
    session: AsyncSession,
    match_id: str,
    player_id: str,
    approve: bool,
    now: datetime,
    reason: Optional[str] = None,
) -> VoteResult:
    """Record one participant's approval or rejection of the submitted scores."""

    m = await get_match(session, match_id)
    record = m.to_record()
    _require_consistent(record)
    if record.status not in confirmation.CONFIRMABLE_STATUSES:
        raise _conflict(match_id, f"match is {record.status.name.lower()}")
    if player_id not in record.participants:
        raise MatchForbidden("only match participants can confirm scores")

    votes = await load_votes(session, match_id)
    outcome = confirmation.record_vote(record, votes, player_id, approve, now)
    if not outcome.accepted:
        raise _conflict(match_id, outcome.message)

    vote = Vote.APPROVE if approve else Vote.REJECT
    session.add(
        MatchConfirmation(
            id=uuid.uuid4().hex,
            match_id=match_id,
            player_id=player_id,
            vote=vote.value,
            reason=reason,
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise _conflict(match_id, "player has already responded")

    ratings_applied = False
    if outcome.validation_status == ValidationStatus.DISPUTED:
        await _dispute(session, m, now)
    elif outcome.validation_status == ValidationStatus.CONFIRMED:
        ratings_applied = await _confirm(session, m, all_confirmed=True)

    await session.commit()
    await session.refresh(m)
    logger.info(
        "Player %s voted %s on match %s (%s)",
        player_id,
        vote.value,
        match_id,
        outcome.validation_status.value,
    )
    return VoteResult(outcome=outcome, ratings_applied=ratings_applied)


async def cancel_match(
    session: AsyncSession, match_id: str, player_id: str, now: datetime
) -> Match:
    """Cancel a match; only the creator may, and only inside the cancel window."""

    m = await get_match(session, match_id)
    record = m.to_record()
    _require_consistent(record)
    state = resolve(record, now, player_id)

    if not state.is_creator:
        raise MatchForbidden("only the match creator can cancel this match")
    if record.status == MatchStatus.CANCELLED:
        raise _conflict(match_id, "match is already cancelled")
    if record.rating_applied:
        raise _conflict(match_id, "ratings have already been applied")
    if record.status not in CANCELLABLE_STATUSES:
        raise _conflict(match_id, f"a {record.status.name.lower()} match cannot be cancelled")
    if not state.can_cancel:
        raise _conflict(match_id, "the cancellation window has closed")

    stmt = (
        update(Match)
        .where(
            Match.id == match_id,
            Match.status == int(record.status),
            Match.rating_applied.is_(False),
        )
        .values(status=int(MatchStatus.CANCELLED))
    )
    await _conditional_update(session, match_id, stmt, "match changed while cancelling")
    await session.commit()
    await session.refresh(m)
    logger.info("Match %s cancelled by %s", match_id, player_id)
    return m


async def confirmation_summary(
    session: AsyncSession, match_id: str, now: datetime
) -> tuple[MatchRecord, confirmation.ConfirmationSummary, confirmation.ValidationWindow]:
    m = await get_match(session, match_id)
    record = m.to_record()
    votes = await load_votes(session, match_id)
    return (
        record,
        confirmation.summarize(record, votes),
        confirmation.validation_window(record.validation_deadline, now),
    )


async def process_pending_confirmations(
    session: AsyncSession, now: datetime
) -> ProcessingResult:
    """Settle matches whose confirmation window has run out.

    Expired pending matches without a rejection are confirmed and rated;
    confirmed matches whose ratings never landed are rated now. A failure on
    one match is recorded and does not stop the batch.
    """

    confirmable = [int(s) for s in confirmation.CONFIRMABLE_STATUSES]
    expired_ids = (
        await session.execute(
            select(Match.id).where(
                Match.validation_status == ValidationStatus.PENDING.value,
                Match.validation_deadline <= to_naive_utc(now),
                Match.status.in_(confirmable),
            )
        )
    ).scalars().all()
    unrated_ids = (
        await session.execute(
            select(Match.id).where(
                Match.validation_status == ValidationStatus.CONFIRMED.value,
                Match.rating_applied.is_(False),
                Match.status.in_(confirmable),
            )
        )
    ).scalars().all()

    errors: List[str] = []
    expired_applied = 0
    confirmed_applied = 0

    for mid in expired_ids:
        try:
            m = await get_match(session, mid)
            record = m.to_record()
            outcome = confirmation.expire(record, await load_votes(session, mid), now)
            if outcome is None:
                continue
            if outcome.validation_status == ValidationStatus.DISPUTED:
                await _dispute(session, m, now)
            elif await _confirm(session, m, all_confirmed=False):
                expired_applied += 1
            await session.commit()
        except DomainException as exc:
            await session.rollback()
            logger.warning("Could not settle expired match %s: %s", mid, exc.detail)
            errors.append(f"{mid}: {exc.detail}")

    for mid in unrated_ids:
        try:
            if await apply_match_ratings(session, mid) is not None:
                confirmed_applied += 1
            await session.commit()
        except DomainException as exc:
            await session.rollback()
            logger.warning("Could not apply ratings for match %s: %s", mid, exc.detail)
            errors.append(f"{mid}: {exc.detail}")

    result = ProcessingResult(
        processed=len(expired_ids) + len(unrated_ids),
        confirmed_applied=confirmed_applied,
        expired_applied=expired_applied,
        errors=errors,
    )
    logger.info(
        "Processed %d matches: %d expired confirmations, %d confirmed ratings, %d errors",
        result.processed,
        result.expired_applied,
        result.confirmed_applied,
        len(errors),
    )
    return result
