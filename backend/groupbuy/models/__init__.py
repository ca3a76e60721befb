from .auth import User, SessionToken, SecurityEvent
from .catalog import Product
from .regions import Region
from .batches import Batch, BatchProduct
from .orders import Order, OrderItem, OrderCheckoutKey
from .settings import SiteSetting
from .sequences import OrderCodeSequence

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'Product',
    'Region',
    'Batch', 'BatchProduct',
    'Order', 'OrderItem', 'OrderCheckoutKey',
    'SiteSetting',
    'OrderCodeSequence',
]
