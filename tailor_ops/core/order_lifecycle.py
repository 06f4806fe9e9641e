"""
Order lifecycle rules: status/progress mapping, due dates, pricing and
measurement fields per garment category.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .exceptions import OrderValidationError
from .models import OrderStatus, Urgency
from .timestamps import to_datetime

# Progress implied by a tailor status transition
STATUS_PROGRESS = {
    OrderStatus.PENDING.value: 0,
    OrderStatus.CONFIRMED.value: 10,
    OrderStatus.IN_PROGRESS.value: 50,
    OrderStatus.READY.value: 90,
    OrderStatus.DELIVERED.value: 100,
    OrderStatus.CANCELLED.value: 0,
}

URGENCY_DAYS = {
    Urgency.URGENT.value: 7,
    Urgency.NORMAL.value: 14,
    Urgency.RELAXED.value: 30,
}

BASE_PRICES = {
    "Business Suit": 400,
    "Evening Gown": 550,
    "Casual Blazer": 300,
    "Dress Shirt": 120,
    "Pants": 150,
    "Skirt": 130,
    "Custom": 200,
}
DEFAULT_BASE_PRICE = 200

URGENCY_MULTIPLIERS = {
    Urgency.URGENT.value: 1.2,
    Urgency.NORMAL.value: 1.0,
    Urgency.RELAXED.value: 0.9,
}

ALL_MEASUREMENTS = ["chest", "waist", "hips", "length", "shoulders", "sleeve"]

MEASUREMENT_FIELDS = {
    "Business Suit": ["chest", "waist", "shoulders", "sleeve", "length", "inseam"],
    "Casual Blazer": ["chest", "waist", "shoulders", "sleeve", "length"],
    "Dress Shirt": ["chest", "waist", "shoulders", "sleeve", "length", "neck"],
    "Evening Gown": ["chest", "waist", "hips", "shoulders", "length"],
    "Pants": ["waist", "hips", "inseam", "length"],
    "Skirt": ["waist", "hips", "length"],
}


def _urgency_value(urgency: Any) -> str:
    value = getattr(urgency, "value", urgency)
    if value not in URGENCY_DAYS:
        raise OrderValidationError(f"Unknown urgency: {urgency}", code="invalid_urgency")
    return value


def validate_status(status: Any) -> str:
    value = getattr(status, "value", status)
    if value not in STATUS_PROGRESS:
        raise OrderValidationError(f"Unknown order status: {status}", code="invalid_status")
    return value


def validate_progress(progress: Any) -> int:
    try:
        value = int(progress)
    except (TypeError, ValueError):
        raise OrderValidationError(f"Progress must be a whole number, got {progress!r}", code="invalid_progress")
    if not 0 <= value <= 100:
        raise OrderValidationError("Progress must be between 0 and 100", code="invalid_progress")
    return value


def progress_for_status(status: Any, requested: Optional[int] = None) -> int:
    """Progress written alongside a tailor status change.

    Only in_progress honours a requested value; every other status pins it.
    """
    value = validate_status(status)
    if value == OrderStatus.IN_PROGRESS.value and requested:
        return validate_progress(requested)
    return STATUS_PROGRESS[value]


def calculate_due_date(urgency: Any, now: datetime) -> datetime:
    return now + timedelta(days=URGENCY_DAYS[_urgency_value(urgency)])


def calculate_price(garment_type: str, urgency: Any) -> int:
    base = BASE_PRICES.get(garment_type, DEFAULT_BASE_PRICE)
    return round(base * URGENCY_MULTIPLIERS[_urgency_value(urgency)])


def measurement_fields(garment_type: Optional[str]) -> List[str]:
    return list(MEASUREMENT_FIELDS.get(garment_type or "", ALL_MEASUREMENTS))


def validate_measurements(garment_type: Optional[str], measurements: Dict[str, Any]) -> Dict[str, str]:
    """Keep the fields known for the garment; values must be blank or positive numbers"""
    allowed = measurement_fields(garment_type)
    cleaned: Dict[str, str] = {}
    for name in allowed:
        raw = measurements.get(name, "")
        value = "" if raw is None else str(raw).strip()
        if value:
            try:
                number = float(value)
            except ValueError:
                raise OrderValidationError(f"Measurement '{name}' must be a number", code="invalid_measurement")
            if number <= 0:
                raise OrderValidationError(f"Measurement '{name}' must be positive", code="invalid_measurement")
        cleaned[name] = value

    unknown = sorted(set(measurements) - set(allowed))
    if unknown:
        raise OrderValidationError(
            f"Unknown measurements for {garment_type or 'this garment'}: {', '.join(unknown)}",
            code="invalid_measurement",
        )
    return cleaned


def has_measurements(measurements: Optional[Dict[str, Any]]) -> bool:
    return bool(measurements) and any(str(v).strip() for v in measurements.values() if v is not None)


def resolve_due_date(order: Dict[str, Any]) -> Optional[datetime]:
    """Explicit due_date first, then the expected_delivery estimate"""
    return to_datetime(order.get("due_date")) or to_datetime(order.get("expected_delivery"))


def due_date_fields(urgency: Any, now: datetime) -> Dict[str, str]:
    due = calculate_due_date(urgency, now)
    return {
        "due_date": due.isoformat(),
        "expected_delivery": due.date().isoformat(),
    }
