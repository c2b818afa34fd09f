from .enums import (
    AccountRole, BranchTier, PriceTier, RequestStatus, PaymentMethod,
    DeliveryStatus, Platform, MovementKind,
)
from .accounts import Account, Product, ProductPrice, Customer
from .inventory import InventoryBalance, StockMovement
from .documents import TransferRequest, DocumentSequence
from .orders import CustomerOrder
from .rewards import RewardTarget

__all__ = [
    'AccountRole', 'BranchTier', 'PriceTier', 'RequestStatus', 'PaymentMethod',
    'DeliveryStatus', 'Platform', 'MovementKind',
    'Account', 'Product', 'ProductPrice', 'Customer',
    'InventoryBalance', 'StockMovement',
    'TransferRequest', 'DocumentSequence',
    'CustomerOrder',
    'RewardTarget',
]
