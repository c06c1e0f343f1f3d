# app/models/__init__.py

from .order.order import Order
