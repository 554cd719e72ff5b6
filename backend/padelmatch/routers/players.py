import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import PlayerAlreadyExists, PlayerNotFound, ProblemDetail
from ..models import Player
from ..schemas import PlayerCreate, PlayerOut, PlayerStatsOut
from ..services import lifecycle, player_record, rating_description
from .viewer import utcnow

router = APIRouter(
    prefix="/players",
    tags=["players"],
    responses={400: {"model": ProblemDetail}, 404: {"model": ProblemDetail}},
)


def _player_out(p: Player) -> PlayerOut:
    return PlayerOut(
        id=p.id,
        name=p.name,
        rating=p.rating,
        ratingDeviation=p.rating_deviation,
        ratingVolatility=p.rating_volatility,
        tier=rating_description(p.rating),
    )


async def _get_player(session: AsyncSession, player_id: str) -> Player:
    p = await session.get(Player, player_id)
    if p is None:
        raise PlayerNotFound(player_id)
    return p


@router.post("", response_model=PlayerOut)
async def create_player(
    body: PlayerCreate,
    session: AsyncSession = Depends(get_session),
):
    pid = body.id or uuid.uuid4().hex
    if await session.get(Player, pid) is not None:
        raise PlayerAlreadyExists(pid)
    p = Player(id=pid, name=body.name)
    session.add(p)
    await session.commit()
    await session.refresh(p)
    return _player_out(p)


@router.get("/{player_id}", response_model=PlayerOut)
async def get_player(player_id: str, session: AsyncSession = Depends(get_session)):
    return _player_out(await _get_player(session, player_id))


@router.get("/{player_id}/stats", response_model=PlayerStatsOut)
async def player_stats(
    player_id: str,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(utcnow),
):
    await _get_player(session, player_id)
    matches = await lifecycle.load_player_matches(session, player_id)
    record = player_record(matches, player_id, now)
    return PlayerStatsOut(
        playerId=record.player_id,
        totalMatches=record.total_matches,
        wins=record.wins,
        losses=record.losses,
        winRate=record.win_rate,
        currentStreak=record.current_streak,
        longestWinStreak=record.longest_win_streak,
        longestLossStreak=record.longest_loss_streak,
        recentPerformance=record.recent_performance,
    )
