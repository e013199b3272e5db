"""
Models package - Import all SQLAlchemy models here
"""

from .admin import Admin
from .user import User
from .address import Address
from .otp import OTP, OtpPurpose
from .product import Product
from .cart import Cart, CartItem
from .order import Order, OrderItem
from .prescription import Prescription
from .return_request import ReturnRequest, ReturnItem

__all__ = [
    "Admin",
    "User",
    "Address",
    "OTP",
    "OtpPurpose",
    "Product",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Prescription",
    "ReturnRequest",
    "ReturnItem"
]
