from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, NamedTuple, Sequence

from ..enums import Phase
from ..schemas import MatchRecord
from .phase import completion_reference, resolve

RECENT_DAYS = 7
PREVIOUS_DAYS = 30
TREND_MIN_MATCHES = 2
TREND_THRESHOLD = 0.1


class PlayerRecord(NamedTuple):
    player_id: str
    total_matches: int
    wins: int
    losses: int
    win_rate: int  # percent
    current_streak: int  # positive for wins, negative for losses
    longest_win_streak: int
    longest_loss_streak: int
    recent_performance: str  # "improving" | "declining" | "stable"


def compute_streaks(results: Sequence[bool]) -> Dict[str, int]:
    """Compute current, longest win, and longest loss streaks."""
    longest_win = longest_loss = 0
    curr_win = curr_loss = 0
    for r in results:
        if r:
            curr_win += 1
            curr_loss = 0
            longest_win = max(longest_win, curr_win)
        else:
            curr_loss += 1
            curr_win = 0
            longest_loss = max(longest_loss, curr_loss)
    current = 0
    if results:
        last = results[-1]
        count = 0
        for r in reversed(results):
            if r == last:
                count += 1
            else:
                break
        current = count if last else -count
    return {
        "current": current,
        "longestWin": longest_win,
        "longestLoss": longest_loss,
    }


def _trend(recent: list[bool], previous: list[bool]) -> str:
    if len(recent) < TREND_MIN_MATCHES or len(previous) < TREND_MIN_MATCHES:
        return "stable"
    recent_rate = sum(recent) / len(recent)
    previous_rate = sum(previous) / len(previous)
    if recent_rate > previous_rate + TREND_THRESHOLD:
        return "improving"
    if recent_rate < previous_rate - TREND_THRESHOLD:
        return "declining"
    return "stable"


def player_record(
    matches: Iterable[MatchRecord], player_id: str, now: datetime
) -> PlayerRecord:
    """Summarise a player's decided matches as of ``now``.

    Uses the phase resolver for the result of each match, so a stored
    ``winner_team`` takes precedence over the set tally exactly as it does
    everywhere else.
    """

    decided: list[tuple[datetime, bool]] = []
    for match in matches:
        state = resolve(match, now, player_id)
        if state.phase != Phase.COMPLETED or state.user_won is None:
            continue
        decided.append((completion_reference(match), state.user_won))
    decided.sort(key=lambda item: item[0])

    results = [won for _, won in decided]
    streaks = compute_streaks(results)
    wins = sum(results)
    losses = len(results) - wins
    win_rate = int(math.floor(wins / len(results) * 100 + 0.5)) if results else 0

    recent_cutoff = now - timedelta(days=RECENT_DAYS)
    previous_cutoff = now - timedelta(days=PREVIOUS_DAYS)
    recent = [won for at, won in decided if at >= recent_cutoff]
    previous = [won for at, won in decided if previous_cutoff <= at < recent_cutoff]

    return PlayerRecord(
        player_id=player_id,
        total_matches=len(results),
        wins=wins,
        losses=losses,
        win_rate=win_rate,
        current_streak=streaks["current"],
        longest_win_streak=streaks["longestWin"],
        longest_loss_streak=streaks["longestLoss"],
        recent_performance=_trend(recent, previous),
    )
