from .base import (
    CourierAdapter, PosAdapter, ShipmentBooking,
    ExternalCustomer, ExternalLineItem, ExternalTransaction,
)
from .courier import NinjaVanCourier
from .pos import StoreHubPos, normalize_transaction

__all__ = [
    'CourierAdapter', 'PosAdapter', 'ShipmentBooking',
    'ExternalCustomer', 'ExternalLineItem', 'ExternalTransaction',
    'NinjaVanCourier', 'StoreHubPos', 'normalize_transaction',
]
