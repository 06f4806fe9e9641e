"""
Order, customer and viewer models for the tailoring shop
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Urgency(str, Enum):
    URGENT = "urgent"
    NORMAL = "normal"
    RELAXED = "relaxed"


class Party(str, Enum):
    """Who performed a write; stored on the order as modified_by"""
    CUSTOMER = "customer"
    TAILOR = "tailor"


class ModificationReason(str, Enum):
    NEW_ORDER = "new_order"
    MANUAL_ORDER = "manual_order"
    CUSTOMER_EDIT = "customer_edit"
    STATUS_UPDATE = "status_update"
    PROGRESS_UPDATE = "progress_update"
    MEASUREMENT_UPDATE = "measurement_update"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value})
EARLY_STAGE_STATUSES = frozenset({OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value})


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


@dataclass
class Viewer:
    """The authenticated party looking at a dashboard"""
    user_id: str
    role: Party
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def counterparty(self) -> Party:
        return Party.TAILOR if self.role == Party.CUSTOMER else Party.CUSTOMER


class InspirationPhoto(BaseModel):
    url: str
    name: str = "Inspiration Photo"
    uploaded_at: Optional[str] = None


class OrderDraft(BaseModel):
    """Order form contents submitted by a customer or entered by the tailor"""
    garment_type: str
    fabric: str = ""
    special_instructions: str = ""
    urgency: Urgency = Urgency.NORMAL
    measurements: Dict[str, str] = Field(default_factory=dict)
    inspiration_photos: List[InspirationPhoto] = Field(default_factory=list)
    remember_measurements: bool = False


class CustomerProfile(BaseModel):
    id: str
    name: str
    phone: str
    email: str
    saved_measurements: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class TailorProfile(BaseModel):
    id: str
    name: str
    business_name: str
    phone: str
    email: str
    is_active: bool = True
    is_verified: bool = False
