"""
Notification records, the event → notification mapping and the bounded
per-session notification list.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import Party
from .timestamps import utc_now

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    NEW_ORDER = "new_order"
    ORDER_UPDATED = "order_updated"
    PROGRESS_UPDATE = "progress_update"
    STATUS_CONFIRMED = "status_confirmed"
    STATUS_READY = "status_ready"
    STATUS_DELIVERED = "status_delivered"
    STATUS_CANCELLED = "status_cancelled"
    DUE_SOON = "due_soon"
    CUSTOMER_UPDATE = "customer_update"


class ChangeKind(str, Enum):
    """Classified change handed from the differ to the synthesizer"""
    NEW = "new"
    STATUS = "status"
    PROGRESS = "progress"
    DETAILS = "details"
    DUE_SOON = "due_soon"


@dataclass
class NotificationRecord:
    id: str
    type: NotificationType
    title: str
    message: str
    order_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    read: bool = False
    urgent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "order_id": self.order_id,
            "created_at": self.created_at.isoformat(),
            "read": self.read,
            "urgent": self.urgent,
        }


# target status -> (type, title, urgent)
STATUS_NOTIFICATIONS = {
    "confirmed": (NotificationType.STATUS_CONFIRMED, "Order Confirmed", False),
    "in_progress": (NotificationType.PROGRESS_UPDATE, "Order In Progress", False),
    "ready": (NotificationType.STATUS_READY, "Order Ready!", True),
    "delivered": (NotificationType.STATUS_DELIVERED, "Order Delivered", False),
    "cancelled": (NotificationType.STATUS_CANCELLED, "Order Cancelled", True),
}

STATUS_MESSAGES = {
    "confirmed": "Your {garment} order has been confirmed by the tailor.",
    "in_progress": "Work has started on your {garment} ({progress}% complete).",
    "ready": "Your {garment} is ready for pickup!",
    "delivered": "Your {garment} has been delivered. Enjoy!",
    "cancelled": "Your {garment} order has been cancelled. Please contact us with any questions.",
}

GENERIC_TITLE = "Order Updated"


def _garment(order: Dict[str, Any]) -> str:
    return order.get("garment_type") or "Custom order"


def _customer(order: Dict[str, Any]) -> str:
    return order.get("customer_name") or "Customer"


def _progress(order: Dict[str, Any]) -> int:
    try:
        return int(order.get("progress") or 0)
    except (TypeError, ValueError):
        return 0


def _due_phrase(days: int) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def synthesize(
    kind: ChangeKind,
    order: Dict[str, Any],
    viewer_role: Party,
    days_until_due: Optional[int] = None,
    urgent: bool = False,
) -> Dict[str, Any]:
    """Map a classified event to {type, title, message, urgent}.

    Unknown statuses and kinds fall back to a generic update.
    """
    garment = _garment(order)
    customer = _customer(order)

    if kind == ChangeKind.NEW:
        return {
            "type": NotificationType.NEW_ORDER,
            "title": "New Order Received",
            "message": f"New order from {customer} - {garment}",
            "urgent": False,
        }

    if kind == ChangeKind.DUE_SOON:
        days = days_until_due or 0
        if days == 0:
            title = "Order Due Today!"
        elif urgent:
            title = "Order Due Tomorrow!"
        else:
            title = "Order Due Soon"
        if viewer_role == Party.TAILOR:
            message = f"{customer}'s order is due {_due_phrase(days)} - {garment}"
        else:
            message = f"Your {garment} is due {_due_phrase(days)}"
        return {"type": NotificationType.DUE_SOON, "title": title, "message": message, "urgent": urgent}

    if kind == ChangeKind.STATUS:
        status = order.get("status")
        entry = STATUS_NOTIFICATIONS.get(status)
        if entry:
            ntype, title, is_urgent = entry
            if viewer_role == Party.TAILOR:
                label = str(status).replace("_", " ")
                message = f"{customer} marked their order {label} - {garment}"
            else:
                message = STATUS_MESSAGES[status].format(garment=garment, progress=_progress(order))
            return {"type": ntype, "title": title, "message": message, "urgent": is_urgent}

    if viewer_role == Party.TAILOR:
        if kind == ChangeKind.DETAILS:
            return {
                "type": NotificationType.CUSTOMER_UPDATE,
                "title": "Order Details Changed",
                "message": f"{customer} changed the details of their order - {garment}",
                "urgent": False,
            }
        return {
            "type": NotificationType.ORDER_UPDATED,
            "title": GENERIC_TITLE,
            "message": f"{customer} updated their order - {garment}",
            "urgent": False,
        }

    if kind == ChangeKind.PROGRESS:
        return {
            "type": NotificationType.PROGRESS_UPDATE,
            "title": "Progress Update",
            "message": f"Your {garment} is now {_progress(order)}% complete",
            "urgent": False,
        }

    return {
        "type": NotificationType.ORDER_UPDATED,
        "title": GENERIC_TITLE,
        "message": f"Your {garment} order was updated",
        "urgent": False,
    }


def build_record(
    kind: ChangeKind,
    order: Dict[str, Any],
    viewer_role: Party,
    days_until_due: Optional[int] = None,
    urgent: bool = False,
    now: Optional[datetime] = None,
) -> NotificationRecord:
    content = synthesize(kind, order, viewer_role, days_until_due=days_until_due, urgent=urgent)
    order_id = order.get("id")
    return NotificationRecord(
        id=f"{content['type'].value}-{order_id}-{uuid.uuid4().hex[:8]}",
        type=content["type"],
        title=content["title"],
        message=content["message"],
        order_id=order_id,
        created_at=now or utc_now(),
        urgent=content["urgent"],
    )


class NotificationCenter:
    """Most-recent-first notification list for one viewer session"""

    def __init__(self, max_size: int = 50):
        self.max_size = max_size
        self.notifications: List[NotificationRecord] = []
        self.last_checked: Optional[datetime] = None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def add(self, records: List[NotificationRecord]) -> List[NotificationRecord]:
        """Prepend a batch; anything beyond max_size is dropped from the tail"""
        if not records:
            return []
        combined = list(records) + self.notifications
        dropped = len(combined) - self.max_size
        self.notifications = combined[:self.max_size]
        if dropped > 0:
            logger.debug(f"Dropped {dropped} oldest notifications")
        return records

    def mark_all_read(self, now: Optional[datetime] = None) -> None:
        for notification in self.notifications:
            notification.read = True
        self.last_checked = now or utc_now()

    def dismiss(self, notification_id: str) -> bool:
        before = len(self.notifications)
        self.notifications = [n for n in self.notifications if n.id != notification_id]
        return len(self.notifications) != before

    def clear(self) -> None:
        self.notifications = []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notifications": [n.to_dict() for n in self.notifications],
            "unread_count": self.unread_count,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
        }
