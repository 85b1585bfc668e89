"""create squares pool schema

Revision ID: 5c2e9a7d1f30
Revises:
Create Date: 2026-01-20 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e9a7d1f30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(80), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('password_hash', sa.String(256), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notify_quarter_wins', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_sms', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'payment',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payment_ref', sa.String(255), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('method', sa.String(16), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_payment_payment_ref', 'payment', ['payment_ref'], unique=True)

    op.create_table(
        'grid_square',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('row_index', sa.Integer(), nullable=False),
        sa.Column('col_index', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('row_number', sa.Integer(), nullable=True),
        sa.Column('col_number', sa.Integer(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payment.id'), nullable=True),
        sa.UniqueConstraint('row_index', 'col_index', name='uq_grid_square_cell'),
        sa.CheckConstraint('row_index BETWEEN 0 AND 9', name='ck_grid_square_row_index'),
        sa.CheckConstraint('col_index BETWEEN 0 AND 9', name='ck_grid_square_col_index'),
    )
    op.create_index('ix_grid_square_owner_id', 'grid_square', ['owner_id'])
    op.create_index('ix_grid_square_status', 'grid_square', ['status'])

    op.create_table(
        'setting',
        sa.Column('key', sa.String(64), primary_key=True),
        sa.Column('value', sa.String(255), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'game_state',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('afc_team', sa.String(64), nullable=False),
        sa.Column('nfc_team', sa.String(64), nullable=False),
        sa.Column('afc_score', sa.Integer(), nullable=False),
        sa.Column('nfc_score', sa.Integer(), nullable=False),
        sa.Column('quarter', sa.Integer(), nullable=False),
        sa.Column('clock', sa.String(16), nullable=False),
        sa.Column('phase', sa.String(16), nullable=False),
        sa.Column('possession', sa.String(64), nullable=True),
        sa.Column('last_play', sa.Text(), nullable=True),
        sa.Column('source', sa.String(16), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
    )

    op.create_table(
        'score_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('afc_score', sa.Integer(), nullable=False),
        sa.Column('nfc_score', sa.Integer(), nullable=False),
        sa.Column('quarter', sa.Integer(), nullable=False),
        sa.Column('clock', sa.String(16), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('scoring_type', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'quarter_winner',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quarter', sa.Integer(), nullable=False, unique=True),
        sa.Column('square_id', sa.Integer(), sa.ForeignKey('grid_square.id'), nullable=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('row_number', sa.Integer(), nullable=False),
        sa.Column('col_number', sa.Integer(), nullable=False),
        sa.Column('afc_score', sa.Integer(), nullable=False),
        sa.Column('nfc_score', sa.Integer(), nullable=False),
        sa.Column('prize_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_overtime', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('announced_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'prop_bet',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('question', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('answer_type', sa.String(16), nullable=False),
        sa.Column('line', sa.Float(), nullable=True),
        sa.Column('unit', sa.String(32), nullable=True),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('point_value', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('correct_answer', sa.String(255), nullable=True),
        sa.Column('result_value', sa.Float(), nullable=True),
        sa.Column('result_notes', sa.Text(), nullable=True),
        sa.Column('graded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('graded_by', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'prop_answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('prop_id', sa.Integer(), sa.ForeignKey('prop_bet.id'), nullable=False),
        sa.Column('answer', sa.String(255), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('is_push', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'prop_id', name='uq_prop_answer_user_prop'),
    )
    op.create_index('ix_prop_answer_user_id', 'prop_answer', ['user_id'])
    op.create_index('ix_prop_answer_prop_id', 'prop_answer', ['prop_id'])


def downgrade():
    op.drop_table('prop_answer')
    op.drop_table('prop_bet')
    op.drop_table('quarter_winner')
    op.drop_table('score_history')
    op.drop_table('game_state')
    op.drop_table('setting')
    op.drop_table('grid_square')
    op.drop_table('payment')
    op.drop_table('user')
