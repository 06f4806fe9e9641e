"""
Order change reconciliation.

Every live-feed delivery is the complete order set visible to the viewer.
The differ compares it against the previous delivery to find changes made by
the other party, the scanner flags orders approaching their due date, and the
reconciler turns both into notification records.

Attribution relies on the self-reported modified_by column, so two parties
writing the same row concurrently resolve as last-writer-wins: whoever wrote
last owns the change and the other party's edit may go unnotified.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .models import Party, is_terminal
from .notifications import ChangeKind, NotificationRecord, build_record
from .order_lifecycle import resolve_due_date
from .timestamps import MS_PER_DAY, to_epoch_ms, utc_now

logger = logging.getLogger(__name__)


@dataclass
class OrderChange:
    kind: ChangeKind
    order: Dict[str, Any]
    previous: Optional[Dict[str, Any]] = None


class SnapshotDiffer:
    """Classifies each order in a snapshot against the retained previous one"""

    def __init__(self, viewer_role: Party):
        self.viewer_role = viewer_role
        self.counterparty = Party.TAILOR if viewer_role == Party.CUSTOMER else Party.CUSTOMER
        self.previous_orders: Dict[str, Dict[str, Any]] = {}
        self.initial_load = True

    def reset(self) -> None:
        """Forget the baseline; the next snapshot is treated as a fresh load"""
        self.previous_orders = {}
        self.initial_load = True

    def diff(self, orders: List[Dict[str, Any]]) -> List[OrderChange]:
        changes: List[OrderChange] = []

        if not self.initial_load:
            for order in orders:
                change = self._classify(order)
                if change:
                    changes.append(change)

        self.previous_orders = {order["id"]: order for order in orders if order.get("id") is not None}
        if self.initial_load:
            logger.info(f"📥 Baseline loaded with {len(self.previous_orders)} orders ({self.viewer_role.value} view)")
        self.initial_load = False
        return changes

    def _classify(self, order: Dict[str, Any]) -> Optional[OrderChange]:
        order_id = order.get("id")
        if order_id is None:
            return None

        previous = self.previous_orders.get(order_id)
        by_counterparty = order.get("modified_by") == self.counterparty.value

        if previous is None:
            # Customers only see their own orders, so "new" is a tailor concern
            if self.viewer_role == Party.TAILOR and by_counterparty:
                return OrderChange(ChangeKind.NEW, order)
            return None

        if not by_counterparty:
            return None

        if order.get("status") != previous.get("status"):
            return OrderChange(ChangeKind.STATUS, order, previous)
        if order.get("progress") != previous.get("progress"):
            return OrderChange(ChangeKind.PROGRESS, order, previous)

        if self.viewer_role == Party.TAILOR:
            attribution_changed = previous.get("modified_by") != order.get("modified_by")
            if attribution_changed and self._timestamp_advanced(previous, order):
                return OrderChange(ChangeKind.DETAILS, order, previous)
        return None

    @staticmethod
    def _timestamp_advanced(previous: Dict[str, Any], order: Dict[str, Any]) -> bool:
        return (
            to_epoch_ms(order.get("updated_at")) > to_epoch_ms(previous.get("updated_at"))
            or to_epoch_ms(order.get("last_modified")) > to_epoch_ms(previous.get("last_modified"))
        )


class DueDateScanner:
    """Flags each order approaching its due date once per session"""

    def __init__(self, warning_days: int = 2, urgent_days: int = 1):
        self.warning_days = warning_days
        self.urgent_days = urgent_days
        self.notified: Set[str] = set()

    def days_until_due(self, order: Dict[str, Any], now: datetime) -> Optional[int]:
        due = resolve_due_date(order)
        if due is None:
            return None
        return math.ceil((to_epoch_ms(due) - to_epoch_ms(now)) / MS_PER_DAY)

    def scan(self, orders: Iterable[Dict[str, Any]], now: datetime) -> List[OrderChange]:
        due_soon: List[OrderChange] = []
        for order in orders:
            order_id = order.get("id")
            if order_id is None:
                continue
            if is_terminal(order.get("status")):
                self.release(order_id)
                continue
            if order_id in self.notified:
                continue

            days = self.days_until_due(order, now)
            if days is None or not 0 <= days <= self.warning_days:
                continue

            self.notified.add(order_id)
            due_soon.append(OrderChange(ChangeKind.DUE_SOON, order))
        return due_soon

    def is_urgent(self, days: int) -> bool:
        return days <= self.urgent_days

    def release(self, order_id: str) -> None:
        self.notified.discard(order_id)


class OrderNotificationReconciler:
    """Snapshot in, notification records out, for one viewer session"""

    def __init__(
        self,
        viewer_role: Party,
        warning_days: int = 2,
        urgent_days: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.viewer_role = viewer_role
        self.differ = SnapshotDiffer(viewer_role)
        self.scanner = DueDateScanner(warning_days=warning_days, urgent_days=urgent_days)
        self.clock = clock

    @property
    def previous_orders(self) -> Dict[str, Dict[str, Any]]:
        return self.differ.previous_orders

    def reset(self) -> None:
        """Called on every (re)subscription; due-date flags survive for the session"""
        self.differ.reset()

    def release_due_date(self, order_id: str) -> None:
        self.scanner.release(order_id)

    def process_snapshot(self, orders: List[Dict[str, Any]]) -> List[NotificationRecord]:
        now = self.clock()
        initial = self.differ.initial_load
        changes = self.differ.diff(orders)
        if not initial:
            changes.extend(self.scanner.scan(orders, now))

        records = []
        for change in changes:
            if change.kind == ChangeKind.DUE_SOON:
                days = self.scanner.days_until_due(change.order, now)
                records.append(build_record(
                    change.kind,
                    change.order,
                    self.viewer_role,
                    days_until_due=days,
                    urgent=self.scanner.is_urgent(days),
                    now=now,
                ))
            else:
                records.append(build_record(change.kind, change.order, self.viewer_role, now=now))

        if records:
            logger.info(f"🔔 {len(records)} notifications from snapshot of {len(orders)} orders")
        return records
