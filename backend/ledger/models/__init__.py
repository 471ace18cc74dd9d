from .tenancy import Location, Room
from .inventory import (
    InventoryType, Strain, Lot, InventoryItem, InventoryAdjustment,
    InventorySplit, InventorySplitLine, InventoryCombination, InventoryCombinationSource,
)
from .sales import Customer, Sale, SaleItem, Refund
from .transfers import Transfer, TransferItem
from .audit import AuditLogEntry, AuditLogImmutableError, IdentifierSequence

__all__ = [
    'Location', 'Room',
    'InventoryType', 'Strain', 'Lot', 'InventoryItem', 'InventoryAdjustment',
    'InventorySplit', 'InventorySplitLine', 'InventoryCombination', 'InventoryCombinationSource',
    'Customer', 'Sale', 'SaleItem', 'Refund',
    'Transfer', 'TransferItem',
    'AuditLogEntry', 'AuditLogImmutableError', 'IdentifierSequence',
]
