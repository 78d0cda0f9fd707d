from .catalog import Brand, Product
from .auth import User, SessionToken
from .carts import Cart, CartItem
from .orders import Order, OrderItem, Payment

__all__ = [
    'Brand', 'Product',
    'User', 'SessionToken',
    'Cart', 'CartItem',
    'Order', 'OrderItem', 'Payment',
]
