"""inventory transfers between locations

Revision ID: m2b3c4d5e6f7
Revises: l1a2b3c4d5e6
Create Date: 2026-10-19 12:00:00.000000

Adds inter-location transfer manifests:
- transfers: sender/receiver locations, status lifecycle, manifest number
- transfer_items: quantity (and usable weight) in transit per source item
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'm2b3c4d5e6f7'
down_revision = 'l1a2b3c4d5e6'
branch_labels = None
depends_on = None


QUANTITY = sa.Numeric(14, 4)


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP') if not nullable else None)


def upgrade():
    op.create_table(
        'transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('manifest_number', sa.String(length=64), nullable=False),
        sa.Column('sender_location_id', sa.Integer(), nullable=False),
        sa.Column('receiver_location_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        _timestamp('estimated_arrival', nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('dispatched_at', nullable=True),
        sa.Column('received_by_user_id', sa.Integer(), nullable=True),
        _timestamp('received_at', nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['sender_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['receiver_location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('manifest_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transfers_sender_location_id', 'transfers', ['sender_location_id'])
    op.create_index('ix_transfers_receiver_location_id', 'transfers', ['receiver_location_id'])
    op.create_index('ix_transfers_status', 'transfers', ['status'])
    op.create_index('ix_transfers_receiver_status', 'transfers', ['receiver_location_id', 'status'])

    op.create_table(
        'transfer_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', QUANTITY, nullable=False),
        sa.Column('usable_weight', QUANTITY, nullable=True),
        sa.Column('received_inventory_item_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['transfer_id'], ['transfers.id'], ),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.ForeignKeyConstraint(['received_inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transfer_items_transfer_id', 'transfer_items', ['transfer_id'])
    op.create_index('ix_transfer_items_inventory_item_id', 'transfer_items', ['inventory_item_id'])


def downgrade():
    op.drop_table('transfer_items')
    op.drop_table('transfers')
