from .base import Base
from .cart_item import CartItem
from .order import Order, OrderItem
from .product import Product
from .user import User

__all__ = ["Base", "CartItem", "Order", "OrderItem", "Product", "User"]
