from typing import Any, List, Optional, Tuple
from datetime import datetime
from pydantic import BaseModel, Field, model_validator, field_validator, ConfigDict
from pydantic.alias_generators import to_camel

from .enums import (
    MatchStatus,
    Phase,
    ValidationStatus,
    parse_match_status,
    parse_validation_status,
)
from .time_utils import coerce_utc, require_utc

MAX_NAME_LENGTH = 100


class SetScore(BaseModel):
    """Games won by each team in one set; either side may still be blank."""

    team1: Optional[int] = None
    team2: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_present(self) -> bool:
        return self.team1 is not None and self.team2 is not None


class MatchRecord(BaseModel):
    """Immutable snapshot of a stored match, as the engine sees it."""

    id: str
    player1_id: str
    player2_id: Optional[str] = None
    player3_id: Optional[str] = None
    player4_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    sets: List[Optional[SetScore]] = Field(default_factory=list)
    status: MatchStatus = MatchStatus.PENDING
    is_public: bool = False
    winner_team: Optional[int] = None
    all_confirmed: bool = False
    validation_status: ValidationStatus = ValidationStatus.NONE
    validation_deadline: Optional[datetime] = None
    rating_applied: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> MatchStatus:
        return parse_match_status(value)

    @field_validator("validation_status", mode="before")
    @classmethod
    def _parse_validation_status(cls, value: Any) -> ValidationStatus:
        return parse_validation_status(value)

    @field_validator("start_time", "end_time", "validation_deadline")
    @classmethod
    def _normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return coerce_utc(value)

    @field_validator("winner_team", mode="before")
    @classmethod
    def _normalize_winner(cls, value: Any) -> Optional[int]:
        # legacy rows store 0 for "no winner yet"
        if value in (None, 0, "0", ""):
            return None
        team = int(value)
        if team not in (1, 2):
            raise ValueError("winner_team must be 1 or 2")
        return team

    @property
    def slots(self) -> Tuple[Optional[str], Optional[str], Optional[str], Optional[str]]:
        return (self.player1_id, self.player2_id, self.player3_id, self.player4_id)

    @property
    def creator_id(self) -> str:
        return self.player1_id

    @property
    def participants(self) -> List[str]:
        return [pid for pid in self.slots if pid]

    @property
    def open_slots(self) -> List[int]:
        return [index for index, pid in enumerate(self.slots, start=1) if not pid]

    def team_of(self, player_id: Optional[str]) -> Optional[int]:
        if not player_id:
            return None
        for index, pid in enumerate(self.slots, start=1):
            if pid == player_id:
                return 1 if index <= 2 else 2
        return None

    def set_score(self, number: int) -> Optional[SetScore]:
        if number < 1 or number > len(self.sets):
            return None
        return self.sets[number - 1]


class MatchState(BaseModel):
    """Viewer-specific view of a match; recomputed for every ``now``."""

    is_future: bool
    is_past: bool
    has_scores: bool
    needs_scores: bool
    phase: Phase
    user_participating: bool
    user_team: Optional[int] = None
    is_creator: bool
    can_join: bool
    can_enter_scores: bool
    can_cancel: bool
    user_won: Optional[bool] = None
    team1_sets: int = 0
    team2_sets: int = 0
    winner: int = 0
    needs_third_set: bool = False
    hours_since_completion: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


# ---------------------------------------------------------------------------
# HTTP payloads
# ---------------------------------------------------------------------------


class PlayerCreate(BaseModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)

    model_config = ConfigDict(extra="forbid")

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("name must be a string")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("name must not be empty")
        return trimmed


class PlayerOut(BaseModel):
    id: str
    name: str
    rating: float
    ratingDeviation: float
    ratingVolatility: float
    tier: str


class PlayerStatsOut(BaseModel):
    playerId: str
    totalMatches: int
    wins: int
    losses: int
    winRate: int
    currentStreak: int
    longestWinStreak: int
    longestLossStreak: int
    recentPerformance: str


class MatchCreate(BaseModel):
    playerIds: List[Optional[str]] = Field(..., min_length=1, max_length=4)
    startTime: datetime
    endTime: Optional[datetime] = None
    isPublic: bool = False

    model_config = ConfigDict(extra="forbid")

    @field_validator("playerIds")
    @classmethod
    def _pad_slots(cls, value: List[Optional[str]]) -> List[Optional[str]]:
        slots = [(pid.strip() or None) if isinstance(pid, str) else None for pid in value]
        if not slots[0]:
            raise ValueError("slot 1 must hold the match creator")
        return slots + [None] * (4 - len(slots))

    @field_validator("startTime", "endTime")
    @classmethod
    def _require_tz(cls, value: Optional[datetime], info) -> Optional[datetime]:
        return require_utc(value, field_name=info.field_name)

    @model_validator(mode="after")
    def _check_times(self) -> "MatchCreate":
        if self.endTime is not None and self.endTime <= self.startTime:
            raise ValueError("endTime must be after startTime")
        return self


class JoinIn(BaseModel):
    team: Optional[int] = Field(default=None, ge=1, le=2)


class SetsIn(BaseModel):
    """Set scores as ``[[6, 4], [3, 6], [7, 6]]`` or ``[{"team1": 6, "team2": 4}]``."""

    sets: List[Any] = Field(..., min_length=1)


class VoteIn(BaseModel):
    approve: bool
    reason: Optional[str] = Field(default=None, max_length=500)


class SetScoreOut(BaseModel):
    team1: int
    team2: int


class MatchOut(BaseModel):
    id: str
    playerIds: List[Optional[str]]
    startTime: datetime
    endTime: Optional[datetime] = None
    isPublic: bool
    status: str
    sets: List[SetScoreOut]
    winnerTeam: Optional[int] = None
    allConfirmed: bool
    validationStatus: str
    validationDeadline: Optional[datetime] = None
    ratingApplied: bool
    state: Optional[MatchState] = None


class ValidationWindowOut(BaseModel):
    isOpen: bool
    deadline: Optional[datetime] = None
    hoursRemaining: int
    minutesRemaining: int
    statusText: str


class ConfirmationSummaryOut(BaseModel):
    matchId: str
    validationStatus: str
    allConfirmed: bool
    approvedCount: int
    rejectedCount: int
    outstandingCount: int
    totalPlayers: int
    canApplyRatings: bool
    window: ValidationWindowOut


class VoteOut(BaseModel):
    accepted: bool
    message: str
    validationStatus: str
    allConfirmed: bool
    ratingsApplied: bool


class ProcessingResultOut(BaseModel):
    processed: int
    confirmedApplied: int
    expiredApplied: int
    errors: List[str]
