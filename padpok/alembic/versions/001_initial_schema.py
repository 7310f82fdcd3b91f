"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-03-02 10:00:00.000000

Creates all tables:
- users, matches
- player_stats, user_medals, match_result_applications, match_history
- notifications
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

match_status = sa.Enum('OPEN', 'FULL', 'CANCELLED', 'COMPLETED', name='matchstatus')
match_level = sa.Enum('BEGINNER', 'INTERMEDIATE', 'ADVANCED', name='matchlevel')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(length=50), nullable=False, unique=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_users_username', 'users', ['username'])

    op.create_table(
        'matches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(length=40), nullable=False),
        sa.Column('location', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('level', match_level, nullable=False),
        sa.Column('age_range', sa.String(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('players_needed', sa.Integer(), nullable=False),
        sa.Column('team1_player1_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('team1_player2_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('team2_player1_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('team2_player2_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('status', match_status, nullable=False),
        sa.Column('score', sa.JSON(), nullable=True),
        sa.Column('submitted_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('confirmed_by', sa.JSON(), nullable=True),
        sa.Column('results_applied', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('result_reminder_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('players_needed BETWEEN 2 AND 4', name='ck_matches_players_needed'),
    )
    op.create_index('idx_matches_status_scheduled', 'matches', ['status', 'scheduled_at'])
    op.create_index('idx_matches_created_by', 'matches', ['created_by'])

    op.create_table(
        'player_stats',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('matches_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('best_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_player_stats_points', 'player_stats', ['points'])

    op.create_table(
        'user_medals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('medal_id', sa.String(length=50), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unlocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('win_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_players', sa.JSON(), nullable=True),
        sa.Column('weekend_matches', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.UniqueConstraint('user_id', 'medal_id', name='uq_user_medals_user_medal'),
    )
    op.create_index('idx_user_medals_user', 'user_medals', ['user_id'])

    op.create_table(
        'match_result_applications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('applied_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('match_id', 'user_id', name='uq_result_applications_match_user'),
    )

    op.create_table(
        'match_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('result', sa.String(length=10), nullable=False),
        sa.Column('team', sa.String(length=10), nullable=False),
        sa.Column('partner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('opponent_ids', sa.JSON(), nullable=True),
        sa.Column('score', sa.JSON(), nullable=True),
        sa.Column('played_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('match_id', 'user_id', name='uq_match_history_match_user'),
    )
    op.create_index('idx_match_history_user_played', 'match_history', ['user_id', 'played_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=True),
        sa.Column('match_title', sa.String(length=255), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        'idx_notifications_user_unread', 'notifications', ['user_id', 'is_read', 'created_at']
    )
    op.create_index('idx_notifications_user_created', 'notifications', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('match_history')
    op.drop_table('match_result_applications')
    op.drop_table('user_medals')
    op.drop_table('player_stats')
    op.drop_table('matches')
    op.drop_table('users')
    match_status.drop(op.get_bind(), checkfirst=True)
    match_level.drop(op.get_bind(), checkfirst=True)
