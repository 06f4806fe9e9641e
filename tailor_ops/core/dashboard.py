"""
Dashboard helpers: order statistics, filters and the due-date calendar
"""

import calendar
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .models import OrderStatus, TERMINAL_STATUSES
from .order_lifecycle import resolve_due_date

DISPLAY_STATUS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "in_progress": "In Progress",
    "ready": "Ready",
    "delivered": "Completed",
    "cancelled": "Cancelled",
}


def display_status(status: Optional[str]) -> str:
    return DISPLAY_STATUS.get(status or "", status or "Unknown")


def order_amount(order: Dict[str, Any]) -> float:
    return float(order.get("total_amount") or order.get("price") or 0)


def order_stats(orders: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Headline numbers for the tailor overview"""
    delivered = [o for o in orders if o.get("status") == OrderStatus.DELIVERED.value]
    return {
        "total_orders": len(orders),
        "total_revenue": sum(order_amount(o) for o in delivered),
        "pending_orders": sum(1 for o in orders if o.get("status") == OrderStatus.PENDING.value),
        "in_progress_orders": sum(
            1 for o in orders
            if o.get("status") in (OrderStatus.CONFIRMED.value, OrderStatus.IN_PROGRESS.value)
        ),
        "completed_orders": len(delivered),
    }


def filter_by_status(orders: List[Dict[str, Any]], status: str = "all") -> List[Dict[str, Any]]:
    if status == "all":
        return list(orders)
    return [o for o in orders if o.get("status") == status]


def filter_customer_view(orders: List[Dict[str, Any]], tab: str = "all") -> List[Dict[str, Any]]:
    """The customer portal's all/active/completed tabs"""
    if tab == "active":
        return [o for o in orders if o.get("status") not in TERMINAL_STATUSES]
    if tab == "completed":
        return [o for o in orders if o.get("status") == OrderStatus.DELIVERED.value]
    return list(orders)


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def orders_for_date(orders: List[Dict[str, Any]], day: date) -> List[Dict[str, Any]]:
    matches = []
    for order in orders:
        due = _as_date(resolve_due_date(order))
        if due == day:
            matches.append(order)
    return matches


def is_past_due(day: date, today: date) -> bool:
    return day < today


def month_calendar(orders: List[Dict[str, Any]], year: int, month: int, today: date) -> Dict[str, Any]:
    """Orders grouped by due day for one month"""
    first_weekday, days_in_month = calendar.monthrange(year, month)
    by_day: Dict[int, List[Dict[str, Any]]] = {}
    for order in orders:
        due = _as_date(resolve_due_date(order))
        if due and due.year == year and due.month == month:
            by_day.setdefault(due.day, []).append(order)

    days = []
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        day_orders = by_day.get(day_number, [])
        days.append({
            "date": day.isoformat(),
            "is_today": day == today,
            "is_past": is_past_due(day, today),
            "order_ids": [o.get("id") for o in day_orders],
            "open_orders": sum(1 for o in day_orders if o.get("status") not in TERMINAL_STATUSES),
        })

    return {
        "year": year,
        "month": month,
        # Sunday-first grid offset, as the dashboard renders it
        "first_weekday": (first_weekday + 1) % 7,
        "days_in_month": days_in_month,
        "days": days,
    }
