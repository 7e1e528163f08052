from .stations import Station
from .inventory import InventoryRecord, product_ref_path
from .sales import Purchase, PublicReceipt, PaymentRecord, PaymentCallback
from .events import PurchaseEvent

__all__ = [
    'Station',
    'InventoryRecord', 'product_ref_path',
    'Purchase', 'PublicReceipt', 'PaymentRecord', 'PaymentCallback',
    'PurchaseEvent',
]
