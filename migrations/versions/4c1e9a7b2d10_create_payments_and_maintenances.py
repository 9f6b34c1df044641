"""Create payments and maintenances tables

Revision ID: 4c1e9a7b2d10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1e9a7b2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('payments',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_out_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('active_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('event_ids', sa.JSON(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('maintenances',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('yousign_request_id', sa.String(length=255), nullable=True),
        sa.Column('signature_status', sa.String(length=50), nullable=False),
        sa.Column('signature_date', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('maintenances', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_maintenances_yousign_request_id'), ['yousign_request_id'], unique=False)


def downgrade():
    with op.batch_alter_table('maintenances', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_maintenances_yousign_request_id'))

    op.drop_table('maintenances')
    op.drop_table('payments')
