"""initial ledger schema

Revision ID: l1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete inventory ledger schema from scratch:
- locations / rooms: tenant scope and physical rooms (rooms soft-deleted)
- inventory_types / strains / lots: taxonomy and lineage
- inventory_items: quantity-bearing rows, tombstoned via deleted_at
- inventory_adjustments / splits / combinations: per-operation records
- customers / sales / sale_items / refunds: sale allocation
- audit_log_entries: append-only audit trail
- identifier_sequences: per-location counters for barcodes and documents
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


QUANTITY = sa.Numeric(14, 4)


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP') if not nullable else None)


def upgrade():
    # ============================================================================
    # locations / rooms
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('license_number', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_license_number', 'locations', ['license_number'], unique=True)
    op.create_index('ix_locations_is_active', 'locations', ['is_active'])

    op.create_table(
        'rooms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('room_type', sa.String(length=32), nullable=True),
        _timestamp('created_at'),
        _timestamp('deleted_at', nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'name', name='uq_rooms_location_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_rooms_location_id', 'rooms', ['location_id'])

    # ============================================================================
    # taxonomy and lineage
    # ============================================================================
    op.create_table(
        'inventory_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='grams'),
        sa.Column('is_source', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_waste', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('can_convert', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_types_category', 'inventory_types', ['category'])

    op.create_table(
        'strains',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'name', name='uq_strains_location_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_strains_location_id', 'strains', ['location_id'])

    op.create_table(
        'lots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=120), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'batch_number', name='uq_lots_location_batch'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_lots_location_id', 'lots', ['location_id'])

    # ============================================================================
    # inventory_items: never hard-deleted, deleted_at is the tombstone
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('inventory_type_id', sa.Integer(), nullable=False),
        sa.Column('strain_id', sa.Integer(), nullable=True),
        sa.Column('lot_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('sublot_identifier', sa.String(length=128), nullable=True),
        sa.Column('quantity', QUANTITY, nullable=False, server_default='0'),
        sa.Column('usable_weight', QUANTITY, nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        _timestamp('deleted_at', nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ),
        sa.ForeignKeyConstraint(['inventory_type_id'], ['inventory_types.id'], ),
        sa.ForeignKeyConstraint(['strain_id'], ['strains.id'], ),
        sa.ForeignKeyConstraint(['lot_id'], ['lots.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_location_id', 'inventory_items', ['location_id'])
    op.create_index('ix_inventory_items_room_id', 'inventory_items', ['room_id'])
    op.create_index('ix_inventory_items_inventory_type_id', 'inventory_items', ['inventory_type_id'])
    op.create_index('ix_inventory_items_strain_id', 'inventory_items', ['strain_id'])
    op.create_index('ix_inventory_items_lot_id', 'inventory_items', ['lot_id'])
    op.create_index('ix_inventory_items_sublot_identifier', 'inventory_items', ['sublot_identifier'])
    op.create_index('ix_inventory_items_deleted_at', 'inventory_items', ['deleted_at'])
    op.create_index('ix_inventory_items_location_room', 'inventory_items', ['location_id', 'room_id'])

    # Active-row index: every quantity query filters deleted_at IS NULL
    op.create_index(
        'ix_inventory_items_active',
        'inventory_items',
        ['location_id', 'inventory_type_id'],
        sqlite_where=sa.text('deleted_at IS NULL'),
        postgresql_where=sa.text('deleted_at IS NULL'),
    )

    # ============================================================================
    # per-operation records
    # ============================================================================
    op.create_table(
        'inventory_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('adjustment_quantity', QUANTITY, nullable=False),
        sa.Column('previous_quantity', QUANTITY, nullable=False),
        sa.Column('new_quantity', QUANTITY, nullable=False),
        sa.Column('adjustment_type', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('is_red_flag', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_adjustments_location_id', 'inventory_adjustments', ['location_id'])
    op.create_index('ix_inventory_adjustments_inventory_item_id', 'inventory_adjustments', ['inventory_item_id'])
    op.create_index('ix_inventory_adjustments_is_red_flag', 'inventory_adjustments', ['is_red_flag'])
    op.create_index('ix_inventory_adjustments_location_created', 'inventory_adjustments', ['location_id', 'created_at'])

    op.create_table(
        'inventory_splits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('parent_inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['parent_inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_splits_location_id', 'inventory_splits', ['location_id'])
    op.create_index('ix_inventory_splits_parent_inventory_item_id', 'inventory_splits', ['parent_inventory_item_id'])

    op.create_table(
        'inventory_split_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('split_id', sa.Integer(), nullable=False),
        sa.Column('child_inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', QUANTITY, nullable=False),
        sa.ForeignKeyConstraint(['split_id'], ['inventory_splits.id'], ),
        sa.ForeignKeyConstraint(['child_inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_split_lines_split_id', 'inventory_split_lines', ['split_id'])
    op.create_index('ix_inventory_split_lines_child_inventory_item_id', 'inventory_split_lines', ['child_inventory_item_id'])

    op.create_table(
        'inventory_combinations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('target_inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['target_inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_combinations_location_id', 'inventory_combinations', ['location_id'])
    op.create_index('ix_inventory_combinations_target_inventory_item_id', 'inventory_combinations', ['target_inventory_item_id'])

    op.create_table(
        'inventory_combination_sources',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('combination_id', sa.Integer(), nullable=False),
        sa.Column('source_inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', QUANTITY, nullable=False),
        sa.ForeignKeyConstraint(['combination_id'], ['inventory_combinations.id'], ),
        sa.ForeignKeyConstraint(['source_inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('combination_id', 'source_inventory_item_id', name='uq_combination_sources_item'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_combination_sources_combination_id', 'inventory_combination_sources', ['combination_id'])
    op.create_index('ix_inventory_combination_sources_source_inventory_item_id', 'inventory_combination_sources', ['source_inventory_item_id'])

    # ============================================================================
    # sales
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('patient_card_number', sa.String(length=64), nullable=True),
        sa.Column('contact_info', sa.JSON(), nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('patient_card_number'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        _timestamp('voided_at', nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'document_number', name='uq_sales_location_docnum'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_location_id', 'sales', ['location_id'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_location_status_created', 'sales', ['location_id', 'status', 'created_at'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', QUANTITY, nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', 'line_number', name='uq_sale_items_sale_line'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_inventory_item_id', 'sale_items', ['inventory_item_id'])

    op.create_table(
        'refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_refunds_sale_id', 'refunds', ['sale_id'])

    # ============================================================================
    # audit_log_entries: append-only (guarded in the ORM)
    # ============================================================================
    op.create_table(
        'audit_log_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('undone_entry_id', sa.Integer(), nullable=True),
        _timestamp('occurred_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['undone_entry_id'], ['audit_log_entries.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_log_entries_location_id', 'audit_log_entries', ['location_id'])
    op.create_index('ix_audit_log_entries_action', 'audit_log_entries', ['action'])
    op.create_index('ix_audit_log_entries_actor_user_id', 'audit_log_entries', ['actor_user_id'])
    op.create_index('ix_audit_log_entries_undone_entry_id', 'audit_log_entries', ['undone_entry_id'])
    op.create_index('ix_audit_log_entries_occurred_at', 'audit_log_entries', ['occurred_at'])
    op.create_index('ix_audit_log_location_occurred', 'audit_log_entries', ['location_id', 'occurred_at'])
    op.create_index('ix_audit_log_entity', 'audit_log_entries', ['entity_type', 'entity_id'])

    # ============================================================================
    # identifier_sequences
    # ============================================================================
    op.create_table(
        'identifier_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('sequence_name', sa.String(length=32), nullable=False),
        sa.Column('next_value', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'sequence_name', name='uq_identifier_sequences_location_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_identifier_sequences_location_id', 'identifier_sequences', ['location_id'])


def downgrade():
    op.drop_table('identifier_sequences')
    op.drop_table('audit_log_entries')
    op.drop_table('refunds')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('customers')
    op.drop_table('inventory_combination_sources')
    op.drop_table('inventory_combinations')
    op.drop_table('inventory_split_lines')
    op.drop_table('inventory_splits')
    op.drop_table('inventory_adjustments')
    op.drop_table('inventory_items')
    op.drop_table('lots')
    op.drop_table('strains')
    op.drop_table('inventory_types')
    op.drop_table('rooms')
    op.drop_table('locations')
