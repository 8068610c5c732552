from .branches import Branch, DocumentSequence
from .users import User, SessionToken
from .inventory import (
    InventoryItem,
    Supplier,
    PurchaseOrder,
    PurchaseOrderLine,
    Sale,
    SaleLine,
    InventoryAdjustment,
    StockMovement,
)
from .subscriptions import SubscriptionPlan, UserSubscription

__all__ = [
    'Branch', 'DocumentSequence',
    'User', 'SessionToken',
    'InventoryItem', 'Supplier', 'PurchaseOrder', 'PurchaseOrderLine',
    'Sale', 'SaleLine', 'InventoryAdjustment', 'StockMovement',
    'SubscriptionPlan', 'UserSubscription',
]
