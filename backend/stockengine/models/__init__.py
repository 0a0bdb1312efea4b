from .tenancy import Tenant, Location
from .settings import TenantInventorySettings
from .inventory import UnitOfMeasure, Product, InventoryItem, InventoryTransaction
from .documents import (
    InventoryAdjustment,
    InventoryAdjustmentItem,
    InventoryTransfer,
    InventoryTransferItem,
    StockCount,
    StockCountItem,
    AuditEvent,
    DocumentSequence,
    IdempotencyRecord,
)
from .pos import PosSession, PosSessionTransaction

__all__ = [
    'Tenant', 'Location', 'TenantInventorySettings',
    'UnitOfMeasure', 'Product', 'InventoryItem', 'InventoryTransaction',
    'InventoryAdjustment', 'InventoryAdjustmentItem',
    'InventoryTransfer', 'InventoryTransferItem',
    'StockCount', 'StockCountItem',
    'AuditEvent', 'DocumentSequence', 'IdempotencyRecord',
    'PosSession', 'PosSessionTransaction',
]
