"""add is_leaderboard_published to game_state

Revision ID: 7d4a2e91c0b5
Revises: 3c9e1f0a7b21
Create Date: 2026-09-20 18:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7d4a2e91c0b5'
down_revision = '3c9e1f0a7b21'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    cols = {c['name'] for c in insp.get_columns('game_state')}
    with op.batch_alter_table('game_state') as batch_op:
        if 'is_leaderboard_published' not in cols:
            batch_op.add_column(
                sa.Column('is_leaderboard_published', sa.Boolean(), nullable=False, server_default=sa.false())
            )


def downgrade():
    with op.batch_alter_table('game_state') as batch_op:
        batch_op.drop_column('is_leaderboard_published')
