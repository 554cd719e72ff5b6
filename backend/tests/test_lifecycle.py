import logging

import pytest
from sqlalchemy import select

from conftest import NOW, add_players, hours, run_db
from padelmatch.enums import MatchStatus, ValidationStatus
from padelmatch.exceptions import (
    MatchForbidden,
    MatchIntegrityError,
    MatchNotFound,
    PlayerNotFound,
    StateConflict,
)
from padelmatch.models import Match, MatchConfirmation, Player
from padelmatch.services import lifecycle
from padelmatch.services.validation import ValidationError

SETS = [[6, 4], [6, 2]]


async def _played_match(session, *, ratings=(1500, 1500, 1500, 1500)):
    """Four players, a match that ended an hour before ``NOW``."""

    await add_players(session, *ratings)
    return await lifecycle.create_match(
        session, ["p1", "p2", "p3", "p4"], NOW - hours(3), NOW - hours(1)
    )


async def _submitted_match(session):
    m = await _played_match(session)
    return await lifecycle.submit_scores(session, m.id, "p1", SETS, NOW)


async def _ratings(session):
    rows = (await session.execute(select(Player))).scalars().all()
    return {p.id: p.rating for p in rows}


def test_create_match_statuses():
    async def scenario(session):
        await add_players(session, 1500, 1500)
        private = await lifecycle.create_match(session, ["p1", "p2"], NOW + hours(24))
        public = await lifecycle.create_match(
            session, ["p1", None, "p2"], NOW + hours(24), is_public=True
        )
        return private.to_record(), public.to_record()

    private, public = run_db(scenario)
    assert private.status == MatchStatus.PENDING
    assert private.slots == ("p1", "p2", None, None)
    assert public.status == MatchStatus.RECRUITING
    assert public.team_of("p2") == 2
    assert private.start_time == NOW + hours(24)


def test_create_match_rejects_unknown_or_duplicate_players():
    async def scenario(session):
        await add_players(session, 1500)
        with pytest.raises(PlayerNotFound):
            await lifecycle.create_match(session, ["p1", "ghost"], NOW)
        with pytest.raises(ValidationError):
            await lifecycle.create_match(session, ["p1", "p1"], NOW)

    run_db(scenario)


def test_join_fills_slots_and_closes_recruiting():
    async def scenario(session):
        await add_players(session, 1500, 1500, 1500, 1500, 1500)
        m = await lifecycle.create_match(
            session, ["p1"], NOW + hours(24), is_public=True
        )
        await lifecycle.join_match(session, m.id, "p2", NOW, team=2)
        await lifecycle.join_match(session, m.id, "p3", NOW)
        with pytest.raises(StateConflict, match="already in this match"):
            await lifecycle.join_match(session, m.id, "p3", NOW)
        await lifecycle.join_match(session, m.id, "p4", NOW)
        with pytest.raises(StateConflict, match="not open"):
            await lifecycle.join_match(session, m.id, "p5", NOW)
        return (await lifecycle.get_match(session, m.id)).to_record()

    record = run_db(scenario)
    assert record.slots == ("p1", "p3", "p2", "p4")
    assert record.status == MatchStatus.PENDING


def test_join_full_team():
    async def scenario(session):
        await add_players(session, 1500, 1500, 1500)
        m = await lifecycle.create_match(session, ["p1", "p2"], NOW + hours(24))
        with pytest.raises(StateConflict, match="team 1 is full"):
            await lifecycle.join_match(session, m.id, "p3", NOW, team=1)

    run_db(scenario)


def test_submit_scores_opens_confirmation():
    async def scenario(session):
        m = await _submitted_match(session)
        return m.to_record(), m.scores_submitted_at

    record, submitted_at = run_db(scenario)
    assert record.status == MatchStatus.NEEDS_CONFIRMATION
    assert record.validation_status == ValidationStatus.PENDING
    assert record.validation_deadline == NOW + hours(24)
    assert record.winner_team == 1
    assert [(s.team1, s.team2) for s in record.sets if s] == [(6, 4), (6, 2)]
    assert submitted_at is not None


def test_submit_scores_guards():
    async def scenario(session):
        m = await _played_match(session)
        with pytest.raises(MatchForbidden):
            await lifecycle.submit_scores(session, m.id, "p2", SETS, NOW)
        with pytest.raises(ValidationError, match="Set 3: required"):
            await lifecycle.submit_scores(session, m.id, "p1", [[6, 4], [4, 6]], NOW)
        with pytest.raises(StateConflict, match="not finished"):
            await lifecycle.submit_scores(session, m.id, "p1", SETS, NOW - hours(2))
        await lifecycle.submit_scores(session, m.id, "p1", SETS, NOW)
        with pytest.raises(StateConflict, match="already submitted"):
            await lifecycle.submit_scores(session, m.id, "p1", SETS, NOW)
        with pytest.raises(MatchNotFound):
            await lifecycle.submit_scores(session, "nope", "p1", SETS, NOW)

    run_db(scenario)


def test_submit_needs_four_players():
    async def scenario(session):
        await add_players(session, 1500, 1500)
        m = await lifecycle.create_match(session, ["p1", "p2"], NOW - hours(2))
        with pytest.raises(StateConflict, match="four players"):
            await lifecycle.submit_scores(session, m.id, "p1", SETS, NOW)

    run_db(scenario)


def test_all_approvals_complete_match_and_apply_ratings():
    async def scenario(session):
        m = await _submitted_match(session)
        results = [
            await lifecycle.cast_vote(session, m.id, pid, True, NOW + hours(1))
            for pid in ("p1", "p2", "p3", "p4")
        ]
        m = await lifecycle.get_match(session, m.id)
        return results, m.to_record(), await _ratings(session)

    results, record, ratings = run_db(scenario)
    assert [r.outcome.validation_status for r in results] == [
        ValidationStatus.PENDING,
        ValidationStatus.PENDING,
        ValidationStatus.PENDING,
        ValidationStatus.CONFIRMED,
    ]
    assert results[-1].ratings_applied is True
    assert record.status == MatchStatus.COMPLETED
    assert record.all_confirmed is True
    assert record.rating_applied is True
    assert ratings == {"p1": 1515, "p2": 1515, "p3": 1485, "p4": 1485}


def test_rejection_disputes_and_blocks_ratings():
    async def scenario(session):
        m = await _submitted_match(session)
        for pid in ("p1", "p2", "p3"):
            await lifecycle.cast_vote(session, m.id, pid, True, NOW)
        result = await lifecycle.cast_vote(
            session, m.id, "p4", False, NOW, reason="it was 6-4 4-6"
        )
        with pytest.raises(StateConflict, match="not awaiting confirmation"):
            await lifecycle.cast_vote(session, m.id, "p4", True, NOW)
        processed = await lifecycle.process_pending_confirmations(session, NOW + hours(48))
        m = await lifecycle.get_match(session, m.id)
        reason = (
            await session.execute(
                select(MatchConfirmation.reason).where(MatchConfirmation.player_id == "p4")
            )
        ).scalar_one()
        return result, processed, m.to_record(), m.disputed_at, reason, await _ratings(session)

    result, processed, record, disputed_at, reason, ratings = run_db(scenario)
    assert result.outcome.validation_status == ValidationStatus.DISPUTED
    assert record.validation_status == ValidationStatus.DISPUTED
    assert record.status == MatchStatus.NEEDS_CONFIRMATION
    assert record.rating_applied is False
    assert disputed_at is not None
    assert reason == "it was 6-4 4-6"
    assert processed.processed == 0
    assert set(ratings.values()) == {1500}


def test_vote_guards():
    async def scenario(session):
        await add_players(session, 1500, 1500, 1500, 1500, 1500)
        m = await lifecycle.create_match(
            session, ["p1", "p2", "p3", "p4"], NOW - hours(3), NOW - hours(1)
        )
        with pytest.raises(StateConflict):
            await lifecycle.cast_vote(session, m.id, "p2", True, NOW)
        await lifecycle.submit_scores(session, m.id, "p1", SETS, NOW)
        with pytest.raises(MatchForbidden):
            await lifecycle.cast_vote(session, m.id, "p5", True, NOW)
        await lifecycle.cast_vote(session, m.id, "p2", True, NOW)
        with pytest.raises(StateConflict, match="already responded"):
            await lifecycle.cast_vote(session, m.id, "p2", False, NOW)

    run_db(scenario)


def test_expired_window_confirms_without_all_confirmed(caplog):
    async def scenario(session):
        m = await _submitted_match(session)
        await lifecycle.cast_vote(session, m.id, "p3", True, NOW)
        early = await lifecycle.process_pending_confirmations(session, NOW + hours(23))
        late = await lifecycle.process_pending_confirmations(session, NOW + hours(25))
        again = await lifecycle.process_pending_confirmations(session, NOW + hours(26))
        m = await lifecycle.get_match(session, m.id)
        return early, late, again, m.to_record(), await _ratings(session)

    with caplog.at_level(logging.INFO, logger="padelmatch"):
        early, late, again, record, ratings = run_db(scenario)
    assert early.processed == 0
    assert late.processed == 1
    assert late.expired_applied == 1
    assert late.errors == []
    assert again.processed == 0
    assert record.status == MatchStatus.COMPLETED
    assert record.validation_status == ValidationStatus.CONFIRMED
    assert record.all_confirmed is False
    assert ratings["p1"] == 1515
    assert "Applied ratings for match" in caplog.text


def test_late_rejection_cannot_dispute_expired_match():
    async def scenario(session):
        m = await _submitted_match(session)
        with pytest.raises(StateConflict, match="window has closed"):
            await lifecycle.cast_vote(session, m.id, "p3", False, NOW + hours(48))
        processed = await lifecycle.process_pending_confirmations(session, NOW + hours(48))
        m = await lifecycle.get_match(session, m.id)
        votes = await lifecycle.load_votes(session, m.id)
        return processed, m.to_record(), votes

    processed, record, votes = run_db(scenario)
    assert votes == {}
    assert processed.expired_applied == 1
    assert record.validation_status == ValidationStatus.CONFIRMED
    assert record.rating_applied is True


def test_processing_reports_unratable_matches():
    async def scenario(session):
        await add_players(session, 1500, 1500, 1500, 1500)
        session.add(
            Match(
                id="legacy",
                player1_id="p1",
                player2_id="p2",
                player3_id="p3",
                player4_id="p4",
                start_time=(NOW - hours(30)).replace(tzinfo=None),
                team1_score_set1=6,
                team2_score_set1=4,
                winner_team=2,
                status=int(MatchStatus.COMPLETED),
                validation_status=ValidationStatus.CONFIRMED.value,
            )
        )
        await session.commit()
        return await lifecycle.process_pending_confirmations(session, NOW)

    result = run_db(scenario)
    assert result.processed == 1
    assert result.confirmed_applied == 0
    assert len(result.errors) == 1
    assert result.errors[0].startswith("legacy:")


def test_integrity_problem_blocks_votes():
    async def scenario(session):
        m = await _submitted_match(session)
        m.winner_team = 2
        await session.commit()
        with pytest.raises(MatchIntegrityError):
            await lifecycle.cast_vote(session, m.id, "p2", True, NOW)

    run_db(scenario)


def test_cancel_rules():
    async def scenario(session):
        await add_players(session, 1500, 1500, 1500, 1500)
        upcoming = await lifecycle.create_match(session, ["p1", "p2"], NOW + hours(5))
        stale = await lifecycle.create_match(session, ["p1", "p2"], NOW - hours(48))
        with pytest.raises(MatchForbidden):
            await lifecycle.cancel_match(session, upcoming.id, "p2", NOW)
        cancelled = await lifecycle.cancel_match(session, upcoming.id, "p1", NOW)
        with pytest.raises(StateConflict, match="already cancelled"):
            await lifecycle.cancel_match(session, upcoming.id, "p1", NOW)
        with pytest.raises(StateConflict, match="window has closed"):
            await lifecycle.cancel_match(session, stale.id, "p1", NOW)
        session.add(
            Match(
                id="finished",
                player1_id="p1",
                player2_id="p2",
                player3_id="p3",
                player4_id="p4",
                start_time=(NOW - hours(3)).replace(tzinfo=None),
                end_time=(NOW - hours(1)).replace(tzinfo=None),
                team1_score_set1=6,
                team2_score_set1=4,
                team1_score_set2=6,
                team2_score_set2=3,
                status=int(MatchStatus.COMPLETED),
            )
        )
        await session.commit()
        with pytest.raises(StateConflict, match="completed match cannot be cancelled"):
            await lifecycle.cancel_match(session, "finished", "p1", NOW)
        finished = await lifecycle.get_match(session, "finished")
        assert finished.status == int(MatchStatus.COMPLETED)
        return cancelled.to_record()

    record = run_db(scenario)
    assert record.status == MatchStatus.CANCELLED


def test_cannot_cancel_rated_match():
    async def scenario(session):
        m = await _submitted_match(session)
        for pid in ("p1", "p2", "p3", "p4"):
            await lifecycle.cast_vote(session, m.id, pid, True, NOW)
        with pytest.raises(StateConflict, match="ratings have already been applied"):
            await lifecycle.cancel_match(session, m.id, "p1", NOW + hours(2))

    run_db(scenario)


def test_confirmation_summary():
    async def scenario(session):
        m = await _submitted_match(session)
        await lifecycle.cast_vote(session, m.id, "p2", True, NOW)
        return await lifecycle.confirmation_summary(session, m.id, NOW + hours(21))

    record, summary, window = run_db(scenario)
    assert (summary.approved, summary.outstanding, summary.total) == (1, 3, 4)
    assert window.is_open is True
    assert window.status_text == "3h 0m remaining"
