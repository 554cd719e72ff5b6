from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "player",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False, server_default="1500"),
        sa.Column("rating_deviation", sa.Float(), nullable=False, server_default="350"),
        sa.Column("rating_volatility", sa.Float(), nullable=False, server_default="0.06"),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_table(
        "match",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("player1_id", sa.String(), sa.ForeignKey("player.id"), nullable=False),
        sa.Column("player2_id", sa.String(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("player3_id", sa.String(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("player4_id", sa.String(), sa.ForeignKey("player.id"), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("team1_score_set1", sa.Integer(), nullable=True),
        sa.Column("team2_score_set1", sa.Integer(), nullable=True),
        sa.Column("team1_score_set2", sa.Integer(), nullable=True),
        sa.Column("team2_score_set2", sa.Integer(), nullable=True),
        sa.Column("team1_score_set3", sa.Integer(), nullable=True),
        sa.Column("team2_score_set3", sa.Integer(), nullable=True),
        sa.Column("winner_team", sa.Integer(), nullable=True),
        sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "all_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "validation_status", sa.String(), nullable=False, server_default="none"
        ),
        sa.Column("validation_deadline", sa.DateTime(), nullable=True),
        sa.Column(
            "rating_applied", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("scores_submitted_at", sa.DateTime(), nullable=True),
        sa.Column("disputed_at", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index(
        "ix_match_status_validation", "match", ["status", "validation_status"]
    )
    op.create_table(
        "match_confirmation",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("match_id", sa.String(), sa.ForeignKey("match.id"), nullable=False),
        sa.Column("player_id", sa.String(), sa.ForeignKey("player.id"), nullable=False),
        sa.Column("vote", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "match_id", "player_id", name="uq_match_confirmation_match_id_player_id"
        ),
    )
    op.create_table(
        "rating_change",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("match_id", sa.String(), sa.ForeignKey("match.id"), nullable=False),
        sa.Column("player_id", sa.String(), sa.ForeignKey("player.id"), nullable=False),
        sa.Column("rating_before", sa.Float(), nullable=False),
        sa.Column("rating_after", sa.Float(), nullable=False),
        sa.Column("rd_before", sa.Float(), nullable=False),
        sa.Column("rd_after", sa.Float(), nullable=False),
        sa.Column("vol_before", sa.Float(), nullable=False),
        sa.Column("vol_after", sa.Float(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "match_id", "player_id", name="uq_rating_change_match_id_player_id"
        ),
    )


def downgrade():
    op.drop_table("rating_change")
    op.drop_table("match_confirmation")
    op.drop_index("ix_match_status_validation", table_name="match")
    op.drop_table("match")
    op.drop_table("player")
