"""Initial migration: create tournament, team, tournamentseed, game tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create tournament table
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("shape", sa.String(), nullable=False),
        sa.Column("regions", sa.JSON(), nullable=True),
        sa.Column("teams_per_region", sa.Integer(), nullable=False, server_default="16"),
        sa.Column("team_count", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="upcoming"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create team table
    op.create_table(
        "team",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("short_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_team_name"),
    )

    # Create tournamentseed table (the seeding table)
    op.create_table(
        "tournamentseed",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("seed", sa.Integer(), nullable=False),
        sa.Column("region", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
        sa.UniqueConstraint("tournament_id", "region", "seed", name="uq_tournament_region_seed"),
        sa.UniqueConstraint("tournament_id", "team_id", name="uq_tournament_team"),
    )
    op.create_index("ix_tournamentseed_tournament_id", "tournamentseed", ["tournament_id"])

    # Create game table. No unique constraint on bracket_position: duplicates stay representable.
    op.create_table(
        "game",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("round", sa.String(), nullable=False),
        sa.Column("round_order", sa.Integer(), nullable=False),
        sa.Column("region", sa.String(), nullable=False),
        sa.Column("bracket_position", sa.String(), nullable=True),
        sa.Column("sequence_in_round", sa.Integer(), nullable=False),
        sa.Column("home_team_id", sa.Integer(), nullable=True),
        sa.Column("away_team_id", sa.Integer(), nullable=True),
        sa.Column("home_seed", sa.Integer(), nullable=True),
        sa.Column("away_seed", sa.Integer(), nullable=True),
        sa.Column("home_state", sa.String(), nullable=False, server_default="unresolved"),
        sa.Column("away_state", sa.String(), nullable=False, server_default="unresolved"),
        sa.Column("status", sa.String(), nullable=False, server_default="scheduled"),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("winner_target_position", sa.String(), nullable=True),
        sa.Column("winner_target_slot", sa.String(), nullable=True),
        sa.Column("loser_target_position", sa.String(), nullable=True),
        sa.Column("loser_target_slot", sa.String(), nullable=True),
        sa.Column("winner_team_id", sa.Integer(), nullable=True),
        sa.Column("loser_team_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["home_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["away_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["winner_team_id"], ["team.id"]),
        sa.ForeignKeyConstraint(["loser_team_id"], ["team.id"]),
    )
    op.create_index("ix_game_tournament_id", "game", ["tournament_id"])
    op.create_index("ix_game_bracket_position", "game", ["bracket_position"])


def downgrade() -> None:
    op.drop_index("ix_game_bracket_position", table_name="game")
    op.drop_index("ix_game_tournament_id", table_name="game")
    op.drop_table("game")
    op.drop_index("ix_tournamentseed_tournament_id", table_name="tournamentseed")
    op.drop_table("tournamentseed")
    op.drop_table("team")
    op.drop_table("tournament")
