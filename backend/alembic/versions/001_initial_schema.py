"""Initial schema: players, tournaments, matches, sets, groups, results

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "player",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ranking", sa.Integer(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deactivated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_player_points", "player", ["points"])

    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="Pending"),
        sa.Column("sets_per_match", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("max_players", sa.Integer(), nullable=False, server_default="32"),
        sa.Column("points_per_set", sa.Integer(), nullable=False, server_default="11"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("player1_id", sa.Integer(), nullable=False),
        sa.Column("player2_id", sa.Integer(), nullable=True),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("phase", sa.String(), nullable=False, server_default="Principal"),
        sa.Column("sequence_in_round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(), nullable=False, server_default="Pending"),
        sa.Column("sets_player1", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sets_player2", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_id", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["player1_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["player2_id"], ["player.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["player.id"]),
    )
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])

    op.create_table(
        "matchset",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("match_id", sa.Integer(), nullable=False),
        sa.Column("set_number", sa.Integer(), nullable=False),
        sa.Column("player1_points", sa.Integer(), nullable=False),
        sa.Column("player2_points", sa.Integer(), nullable=False),
        sa.Column("winner_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["match_id"], ["match.id"]),
        sa.ForeignKeyConstraint(["winner_id"], ["player.id"]),
        sa.UniqueConstraint("match_id", "set_number", name="uq_match_set_number"),
    )
    op.create_index("ix_matchset_match_id", "matchset", ["match_id"])

    op.create_table(
        "tournamentgroup",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
    )
    op.create_index("ix_tournamentgroup_tournament_id", "tournamentgroup", ["tournament_id"])

    op.create_table(
        "groupplayerlink",
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("group_id", "player_id"),
        sa.ForeignKeyConstraint(["group_id"], ["tournamentgroup.id"]),
        sa.ForeignKeyConstraint(["player_id"], ["player.id"]),
    )

    op.create_table(
        "tournamentresult",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("final_position", sa.Integer(), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.ForeignKeyConstraint(["player_id"], ["player.id"]),
        sa.UniqueConstraint("tournament_id", "player_id", name="uq_result_tournament_player"),
        sa.UniqueConstraint("tournament_id", "final_position", name="uq_result_tournament_position"),
    )
    op.create_index("ix_tournamentresult_tournament_id", "tournamentresult", ["tournament_id"])
    op.create_index("ix_tournamentresult_player_id", "tournamentresult", ["player_id"])


def downgrade() -> None:
    op.drop_index("ix_tournamentresult_player_id", table_name="tournamentresult")
    op.drop_index("ix_tournamentresult_tournament_id", table_name="tournamentresult")
    op.drop_table("tournamentresult")
    op.drop_table("groupplayerlink")
    op.drop_index("ix_tournamentgroup_tournament_id", table_name="tournamentgroup")
    op.drop_table("tournamentgroup")
    op.drop_index("ix_matchset_match_id", table_name="matchset")
    op.drop_table("matchset")
    op.drop_index("ix_match_tournament_id", table_name="match")
    op.drop_table("match")
    op.drop_table("tournament")
    op.drop_index("ix_player_points", table_name="player")
    op.drop_table("player")
