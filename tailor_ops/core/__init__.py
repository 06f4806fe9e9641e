"""
Core business logic for the tailoring shop.

This module contains:
- Order lifecycle rules and pricing
- Timestamp normalization
- Snapshot diffing and due-date scanning
- Notification synthesis and the notification list
- Dashboard statistics and calendar helpers
"""

from . import timestamps
from . import models
from . import exceptions
from . import order_lifecycle
from . import notifications
from . import order_differ
from . import dashboard

__all__ = [
    'timestamps',
    'models',
    'exceptions',
    'order_lifecycle',
    'notifications',
    'order_differ',
    'dashboard'
]
