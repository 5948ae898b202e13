"""create member, kniffel_sheet, score_cell and penalty tables

Revision ID: 4c2a9e1f7b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e1f7b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'member' not in existing_tables:
        op.create_table(
            'member',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
            sa.Column('role', sa.String(length=64), nullable=True),
        )

    if 'kniffel_sheet' not in existing_tables:
        op.create_table(
            'kniffel_sheet',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('year', sa.Integer(), nullable=False),
            sa.Column('month', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('player_order', sa.Text(), nullable=False),
            sa.Column('guests', sa.Text(), nullable=False),
        )
        op.create_index('ix_kniffel_sheet_year', 'kniffel_sheet', ['year'])
        op.create_index('ix_kniffel_sheet_month', 'kniffel_sheet', ['month'])

    if 'score_cell' not in existing_tables:
        op.create_table(
            'score_cell',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('sheet_id', sa.String(length=32), sa.ForeignKey('kniffel_sheet.id', ondelete='CASCADE'), nullable=False),
            sa.Column('player_id', sa.String(length=64), nullable=False),
            sa.Column('field', sa.String(length=32), nullable=False),
            sa.Column('value', sa.Integer(), nullable=True),
            sa.Column('stroke', sa.Boolean(), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint('sheet_id', 'player_id', 'field', name='uq_score_cell'),
            sa.CheckConstraint('NOT (stroke AND value IS NOT NULL)', name='ck_score_cell_stroke_xor_value'),
        )
        op.create_index('ix_score_cell_sheet_id', 'score_cell', ['sheet_id'])

    if 'penalty' not in existing_tables:
        op.create_table(
            'penalty',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False),
            sa.Column('reason', sa.String(length=256), nullable=False),
            sa.Column('date', sa.Date(), nullable=False),
            sa.Column('is_paid', sa.Boolean(), nullable=False),
            sa.Column('guest_name', sa.String(length=128), nullable=True),
            sa.Column('is_guest', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index('ix_penalty_user_id', 'penalty', ['user_id'])


def downgrade():
    op.drop_table('penalty')
    op.drop_table('score_cell')
    op.drop_table('kniffel_sheet')
    op.drop_table('member')
