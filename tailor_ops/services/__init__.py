"""
Service layer modules for the tailor shop.

This module contains service implementations for:
- Live order watching and notification reconciliation
- Order write paths and status emails
- Customer and tailor authentication
- Inspiration photo storage
- The dashboard HTTP/WebSocket API
"""

from . import order_watcher
from . import order_service
from . import auth_service
from . import photo_storage

__all__ = [
    'order_watcher',
    'order_service',
    'auth_service',
    'photo_storage'
]
