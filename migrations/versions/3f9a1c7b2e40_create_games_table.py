"""create games table

Revision ID: 3f9a1c7b2e40
Revises:
Create Date: 2026-10-19 10:12:31.418204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c7b2e40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('games',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('winner', sa.String(length=4), nullable=False),
        sa.Column('moves', sa.JSON(), nullable=False),
        sa.Column('final_board', sa.JSON(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    # stats queries count by winner
    op.create_index('ix_games_winner', 'games', ['winner'])


def downgrade():
    op.drop_index('ix_games_winner', table_name='games')
    op.drop_table('games')
