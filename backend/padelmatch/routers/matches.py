# backend/padelmatch/routers/matches.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import MatchForbidden, ProblemDetail, http_problem
from ..models import Match
from ..schemas import (
    ConfirmationSummaryOut,
    JoinIn,
    MatchCreate,
    MatchOut,
    MatchRecord,
    ProcessingResultOut,
    SetScoreOut,
    SetsIn,
    ValidationWindowOut,
    VoteIn,
    VoteOut,
)
from ..services import lifecycle
from ..services.phase import resolve
from ..services.validation import ValidationError
from .viewer import get_viewer_id, limiter, require_viewer, score_submission_rate_limit, utcnow

# Resource-only prefix; versioning is added in main.py
router = APIRouter(
    prefix="/matches",
    tags=["matches"],
    responses={
        403: {"model": ProblemDetail},
        404: {"model": ProblemDetail},
        409: {"model": ProblemDetail},
    },
)


def match_out(record: MatchRecord, now: datetime, viewer_id: Optional[str]) -> MatchOut:
    return MatchOut(
        id=record.id,
        playerIds=list(record.slots),
        startTime=record.start_time,
        endTime=record.end_time,
        isPublic=record.is_public,
        status=record.status.name.lower(),
        sets=[
            SetScoreOut(team1=s.team1, team2=s.team2)
            for s in record.sets
            if s is not None and s.is_present
        ],
        winnerTeam=record.winner_team,
        allConfirmed=record.all_confirmed,
        validationStatus=record.validation_status.value,
        validationDeadline=record.validation_deadline,
        ratingApplied=record.rating_applied,
        state=resolve(record, now, viewer_id),
    )


def _out(m: Match, now: datetime, viewer_id: Optional[str]) -> MatchOut:
    return match_out(m.to_record(), now, viewer_id)


# POST /api/v0/matches/process-confirmations
@router.post("/process-confirmations", response_model=ProcessingResultOut)
async def process_confirmations(
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(utcnow),
) -> ProcessingResultOut:
    result = await lifecycle.process_pending_confirmations(session, now)
    return ProcessingResultOut(
        processed=result.processed,
        confirmedApplied=result.confirmed_applied,
        expiredApplied=result.expired_applied,
        errors=result.errors,
    )


# POST /api/v0/matches
@router.post("", response_model=MatchOut)
async def create_match(
    body: MatchCreate,
    session: AsyncSession = Depends(get_session),
    viewer_id: str = Depends(require_viewer),
    now: datetime = Depends(utcnow),
) -> MatchOut:
    if body.playerIds[0] != viewer_id:
        raise MatchForbidden("the creator must occupy slot 1")
    try:
        m = await lifecycle.create_match(
            session,
            body.playerIds,
            body.startTime,
            body.endTime,
            is_public=body.isPublic,
        )
    except ValidationError as e:
        raise http_problem(
            status_code=422,
            detail=str(e),
            code="match_validation_error",
        )
    return _out(m, now, viewer_id)


# GET /api/v0/matches/{mid}
@router.get("/{mid}", response_model=MatchOut)
async def get_match(
    mid: str,
    session: AsyncSession = Depends(get_session),
    viewer_id: Optional[str] = Depends(get_viewer_id),
    now: datetime = Depends(utcnow),
) -> MatchOut:
    m = await lifecycle.get_match(session, mid)
    return _out(m, now, viewer_id)


# POST /api/v0/matches/{mid}/join
@router.post("/{mid}/join", response_model=MatchOut)
async def join_match(
    mid: str,
    body: Optional[JoinIn] = None,
    session: AsyncSession = Depends(get_session),
    viewer_id: str = Depends(require_viewer),
    now: datetime = Depends(utcnow),
) -> MatchOut:
    team = body.team if body is not None else None
    m = await lifecycle.join_match(session, mid, viewer_id, now, team=team)
    return _out(m, now, viewer_id)


# POST /api/v0/matches/{mid}/sets
@router.post("/{mid}/sets", response_model=MatchOut)
@limiter.limit(score_submission_rate_limit)
async def record_sets(
    request: Request,
    mid: str,
    body: SetsIn,
    session: AsyncSession = Depends(get_session),
    viewer_id: str = Depends(require_viewer),
    now: datetime = Depends(utcnow),
) -> MatchOut:
    try:
        m = await lifecycle.submit_scores(session, mid, viewer_id, body.sets, now)
    except ValidationError as e:
        raise http_problem(
            status_code=422,
            detail=str(e),
            code="match_validation_error",
        )
    return _out(m, now, viewer_id)


# GET /api/v0/matches/{mid}/confirmations
@router.get("/{mid}/confirmations", response_model=ConfirmationSummaryOut)
async def get_confirmations(
    mid: str,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(utcnow),
) -> ConfirmationSummaryOut:
    record, summary, window = await lifecycle.confirmation_summary(session, mid, now)
    return ConfirmationSummaryOut(
        matchId=record.id,
        validationStatus=summary.validation_status.value,
        allConfirmed=summary.all_confirmed,
        approvedCount=summary.approved,
        rejectedCount=summary.rejected,
        outstandingCount=summary.outstanding,
        totalPlayers=summary.total,
        canApplyRatings=summary.can_apply_ratings,
        window=ValidationWindowOut(
            isOpen=window.is_open,
            deadline=window.deadline,
            hoursRemaining=window.hours_remaining,
            minutesRemaining=window.minutes_remaining,
            statusText=window.status_text,
        ),
    )


# POST /api/v0/matches/{mid}/confirmations
@router.post("/{mid}/confirmations", response_model=VoteOut)
async def vote_on_scores(
    mid: str,
    body: VoteIn,
    session: AsyncSession = Depends(get_session),
    viewer_id: str = Depends(require_viewer),
    now: datetime = Depends(utcnow),
) -> VoteOut:
    result = await lifecycle.cast_vote(
        session, mid, viewer_id, body.approve, now, reason=body.reason
    )
    return VoteOut(
        accepted=result.outcome.accepted,
        message=result.outcome.message,
        validationStatus=result.outcome.validation_status.value,
        allConfirmed=result.outcome.all_confirmed,
        ratingsApplied=result.ratings_applied,
    )


# DELETE /api/v0/matches/{mid}
@router.delete("/{mid}", status_code=204)
async def cancel_match(
    mid: str,
    session: AsyncSession = Depends(get_session),
    viewer_id: str = Depends(require_viewer),
    now: datetime = Depends(utcnow),
):
    await lifecycle.cancel_match(session, mid, viewer_id, now)
    return Response(status_code=204)
