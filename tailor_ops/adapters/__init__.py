"""
Adapter modules for external services.

This module contains adapters for:
- Supabase Realtime order feeds
- Transactional status emails
"""

from . import order_feed
from . import email_adapter

__all__ = [
    'order_feed',
    'email_adapter'
]
