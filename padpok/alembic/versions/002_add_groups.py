"""add_groups

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

Add groups and group_members tables, link matches and match_history to a
group, and store the player's position on match_history rows.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create group tables and the new group/position columns."""
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_groups_name", "groups", ["name"])

    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )
    op.create_index("idx_group_members_user", "group_members", ["user_id"])

    op.add_column("matches", sa.Column("group_id", sa.Integer(), nullable=True))
    op.create_foreign_key("fk_matches_group_id", "matches", "groups", ["group_id"], ["id"])
    op.create_index("idx_matches_group_scheduled", "matches", ["group_id", "scheduled_at"])

    op.add_column("match_history", sa.Column("position", sa.String(length=10), nullable=True))
    op.add_column("match_history", sa.Column("group_id", sa.Integer(), nullable=True))
    op.create_foreign_key(
        "fk_match_history_group_id", "match_history", "groups", ["group_id"], ["id"]
    )
    op.create_index("idx_match_history_group", "match_history", ["group_id"])


def downgrade() -> None:
    """Drop group tables and columns."""
    op.drop_index("idx_match_history_group", table_name="match_history")
    op.drop_constraint("fk_match_history_group_id", "match_history", type_="foreignkey")
    op.drop_column("match_history", "group_id")
    op.drop_column("match_history", "position")

    op.drop_index("idx_matches_group_scheduled", table_name="matches")
    op.drop_constraint("fk_matches_group_id", "matches", type_="foreignkey")
    op.drop_column("matches", "group_id")

    op.drop_index("idx_group_members_user", table_name="group_members")
    op.drop_table("group_members")
    op.drop_index("idx_groups_name", table_name="groups")
    op.drop_table("groups")
