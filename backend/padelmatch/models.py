from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Integer,
    Float,
    Boolean,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from .db import Base
from .schemas import MatchRecord, SetScore

DEFAULT_RATING = 1500.0
DEFAULT_RATING_DEVIATION = 350.0
DEFAULT_RATING_VOLATILITY = 0.06


class Player(Base):
    __tablename__ = "player"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    rating = Column(Float, nullable=False, default=DEFAULT_RATING)
    rating_deviation = Column(Float, nullable=False, default=DEFAULT_RATING_DEVIATION)
    rating_volatility = Column(Float, nullable=False, default=DEFAULT_RATING_VOLATILITY)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class Match(Base):
    __tablename__ = "match"
    id = Column(String, primary_key=True)
    # slot 1 is the creator; slots 1-2 are team 1, slots 3-4 team 2
    player1_id = Column(String, ForeignKey("player.id"), nullable=False)
    player2_id = Column(String, ForeignKey("player.id"), nullable=True)
    player3_id = Column(String, ForeignKey("player.id"), nullable=True)
    player4_id = Column(String, ForeignKey("player.id"), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    team1_score_set1 = Column(Integer, nullable=True)
    team2_score_set1 = Column(Integer, nullable=True)
    team1_score_set2 = Column(Integer, nullable=True)
    team2_score_set2 = Column(Integer, nullable=True)
    team1_score_set3 = Column(Integer, nullable=True)
    team2_score_set3 = Column(Integer, nullable=True)
    winner_team = Column(Integer, nullable=True)
    status = Column(Integer, nullable=False, default=1)
    is_public = Column(Boolean, nullable=False, default=False)
    all_confirmed = Column(Boolean, nullable=False, default=False)
    validation_status = Column(String, nullable=False, default="none")
    validation_deadline = Column(DateTime, nullable=True)
    rating_applied = Column(Boolean, nullable=False, default=False)
    scores_submitted_at = Column(DateTime, nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_match_status_validation", "status", "validation_status"),
    )

    def set_scores(self):
        return [
            (self.team1_score_set1, self.team2_score_set1),
            (self.team1_score_set2, self.team2_score_set2),
            (self.team1_score_set3, self.team2_score_set3),
        ]

    def to_record(self) -> MatchRecord:
        """Snapshot this row for the engine; the stored status is parsed strictly."""

        return MatchRecord(
            id=self.id,
            player1_id=self.player1_id,
            player2_id=self.player2_id,
            player3_id=self.player3_id,
            player4_id=self.player4_id,
            start_time=self.start_time,
            end_time=self.end_time,
            sets=[
                SetScore(team1=a, team2=b) if a is not None or b is not None else None
                for a, b in self.set_scores()
            ],
            status=self.status,
            is_public=bool(self.is_public),
            winner_team=self.winner_team,
            all_confirmed=bool(self.all_confirmed),
            validation_status=self.validation_status,
            validation_deadline=self.validation_deadline,
            rating_applied=bool(self.rating_applied),
        )


class MatchConfirmation(Base):
    """One participant's answer to the submitted scores."""

    __tablename__ = "match_confirmation"
    id = Column(String, primary_key=True)
    match_id = Column(String, ForeignKey("match.id"), nullable=False)
    player_id = Column(String, ForeignKey("player.id"), nullable=False)
    vote = Column(String, nullable=False)  # "approve" | "reject"
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "match_id", "player_id", name="uq_match_confirmation_match_id_player_id"
        ),
    )


class RatingChange(Base):
    """Audit row written when a confirmed match moves a player's rating."""

    __tablename__ = "rating_change"
    id = Column(String, primary_key=True)
    match_id = Column(String, ForeignKey("match.id"), nullable=False)
    player_id = Column(String, ForeignKey("player.id"), nullable=False)
    rating_before = Column(Float, nullable=False)
    rating_after = Column(Float, nullable=False)
    rd_before = Column(Float, nullable=False)
    rd_after = Column(Float, nullable=False)
    vol_before = Column(Float, nullable=False)
    vol_after = Column(Float, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "match_id", "player_id", name="uq_rating_change_match_id_player_id"
        ),
    )
