"""Delivery platform core: order status lifecycle, notifications and search popularity."""

__version__ = "1.0.0"
