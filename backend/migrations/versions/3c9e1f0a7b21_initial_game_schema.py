"""initial gold rush schema

Revision ID: 3c9e1f0a7b21
Revises:
Create Date: 2026-09-14 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9e1f0a7b21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('location_name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'teams',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('team_name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('team_code', sa.String(length=16), nullable=False),
        sa.Column('team_type', sa.String(length=16), nullable=False),
        sa.Column('team_lead_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True, unique=True),
        sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_teams_team_code', 'teams', ['team_code'], unique=True)

    op.create_table(
        'team_members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_team_members_team_id', 'team_members', ['team_id'])

    op.create_table(
        'gold_bars',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('qr_code', sa.String(length=64), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=False),
        sa.Column('clue_text', sa.Text(), nullable=False),
        sa.Column('clue_location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=False),
        sa.Column('is_scanned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('scanned_by_team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=True),
        sa.Column('scanned_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('location_id <> clue_location_id', name='ck_gold_bar_clue_elsewhere'),
    )
    op.create_index('ix_gold_bars_qr_code', 'gold_bars', ['qr_code'], unique=True)

    op.create_table(
        'team_clues',
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id'), primary_key=True),
        sa.Column('current_clue_text', sa.Text(), nullable=True),
        sa.Column('current_clue_location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('next_gold_bar_id', sa.Integer(), sa.ForeignKey('gold_bars.id'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'sabotages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('traitor_team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('target_team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('sabotage_start_time', sa.DateTime(), nullable=False),
        sa.Column('sabotage_end_time', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_sabotages_traitor_team_id', 'sabotages', ['traitor_team_id'])
    op.create_index('ix_sabotages_target_team_id', 'sabotages', ['target_team_id'])

    op.create_table(
        'game_state',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('current_round', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_rounds', sa.Integer(), nullable=False),
        sa.Column('round_duration', sa.Integer(), nullable=False),
        sa.Column('sabotage_duration', sa.Integer(), nullable=False),
        sa.Column('sabotage_cooldown', sa.Integer(), nullable=False),
        sa.Column('sabotage_same_person_cooldown', sa.Integer(), nullable=False),
        sa.Column('game_status', sa.String(length=32), nullable=False, server_default='not_started'),
        sa.Column('round_start_time', sa.DateTime(), nullable=True),
        sa.Column('round_end_time', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'scans_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('teams.id'), nullable=False),
        sa.Column('gold_bar_id', sa.Integer(), sa.ForeignKey('gold_bars.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('was_sabotaged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('scanned_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_scans_history_team_id', 'scans_history', ['team_id'])


def downgrade():
    op.drop_table('scans_history')
    op.drop_table('game_state')
    op.drop_table('sabotages')
    op.drop_table('team_clues')
    op.drop_table('gold_bars')
    op.drop_table('team_members')
    op.drop_table('teams')
    op.drop_table('locations')
    op.drop_table('users')
