from datetime import timedelta

import pytest

from tailor_ops.core.models import Party
from tailor_ops.core.notifications import ChangeKind, NotificationCenter, NotificationType
from tailor_ops.core.order_differ import DueDateScanner, OrderNotificationReconciler, SnapshotDiffer


class TestSnapshotDiffer:
    """Unit tests for snapshot classification"""

    def test_initial_snapshot_never_notifies(self, make_order):
        differ = SnapshotDiffer(Party.TAILOR)
        changes = differ.diff([make_order("o1"), make_order("o2", modified_by="customer")])
        assert changes == []
        assert set(differ.previous_orders) == {"o1", "o2"}
        assert differ.initial_load is False

    def test_identical_redelivery_is_silent(self, make_order):
        differ = SnapshotDiffer(Party.CUSTOMER)
        snapshot = [make_order(status="confirmed", progress=10, modified_by="tailor")]
        differ.diff(snapshot)
        assert differ.diff(snapshot) == []

    def test_new_order_from_customer_on_tailor_view(self, make_order):
        differ = SnapshotDiffer(Party.TAILOR)
        differ.diff([make_order("o1")])
        changes = differ.diff([make_order("o2", modified_by="customer"), make_order("o1")])
        assert [(c.kind, c.order["id"]) for c in changes] == [(ChangeKind.NEW, "o2")]

    def test_manual_order_by_tailor_is_not_new(self, make_order):
        differ = SnapshotDiffer(Party.TAILOR)
        differ.diff([])
        assert differ.diff([make_order("o9", modified_by="tailor")]) == []

    def test_new_order_on_customer_view_is_silent(self, make_order):
        differ = SnapshotDiffer(Party.CUSTOMER)
        differ.diff([])
        assert differ.diff([make_order("o9", modified_by="tailor")]) == []

    def test_status_change_by_counterparty(self, make_order):
        differ = SnapshotDiffer(Party.CUSTOMER)
        differ.diff([make_order()])
        changes = differ.diff([make_order(status="confirmed", progress=10, modified_by="tailor")])
        assert len(changes) == 1
        assert changes[0].kind == ChangeKind.STATUS
        assert changes[0].previous["status"] == "pending"

    def test_progress_only_change(self, make_order):
        differ = SnapshotDiffer(Party.CUSTOMER)
        differ.diff([make_order(status="in_progress", progress=50, modified_by="tailor")])
        changes = differ.diff([make_order(status="in_progress", progress=70, modified_by="tailor")])
        assert [c.kind for c in changes] == [ChangeKind.PROGRESS]

    def test_own_change_is_silent(self, make_order):
        differ = SnapshotDiffer(Party.CUSTOMER)
        differ.diff([make_order()])
        assert differ.diff([make_order(status="cancelled", modified_by="customer")]) == []

    def test_detail_edit_on_tailor_view(self, make_order):
        differ = SnapshotDiffer(Party.TAILOR)
        differ.diff([make_order(status="confirmed", modified_by="tailor")])
        edited = make_order(
            status="confirmed",
            modified_by="customer",
            fabric="Wool",
            updated_at="2024-03-02T10:00:00+00:00",
        )
        changes = differ.diff([edited])
        assert [c.kind for c in changes] == [ChangeKind.DETAILS]

    def test_attribution_flip_without_newer_timestamp_is_silent(self, make_order):
        differ = SnapshotDiffer(Party.TAILOR)
        differ.diff([make_order(modified_by="tailor")])
        assert differ.diff([make_order(modified_by="customer")]) == []

    def test_deleted_orders_drop_out_of_baseline(self, make_order):
        differ = SnapshotDiffer(Party.TAILOR)
        differ.diff([make_order("o1"), make_order("o2")])
        differ.diff([make_order("o1")])
        assert set(differ.previous_orders) == {"o1"}

    def test_reset_restores_initial_load(self, make_order):
        differ = SnapshotDiffer(Party.CUSTOMER)
        differ.diff([make_order()])
        differ.reset()
        assert differ.previous_orders == {}
        assert differ.diff([make_order(status="ready", modified_by="tailor")]) == []


class TestDueDateScanner:
    """Unit tests for due-date flagging"""

    @pytest.fixture
    def scanner(self):
        return DueDateScanner(warning_days=2, urgent_days=1)

    def test_days_until_due_rounds_up(self, scanner, make_order, fixed_now):
        order = make_order(due_date=(fixed_now + timedelta(days=1, hours=1)).isoformat())
        assert scanner.days_until_due(order, fixed_now) == 2

    def test_flags_once(self, scanner, make_order, fixed_now):
        order = make_order(due_date=(fixed_now + timedelta(days=1)).isoformat())
        assert len(scanner.scan([order], fixed_now)) == 1
        assert scanner.scan([order], fixed_now) == []

    def test_ignores_outside_window(self, scanner, make_order, fixed_now):
        later = make_order("o1", due_date=(fixed_now + timedelta(days=5)).isoformat())
        overdue = make_order("o2", due_date=(fixed_now - timedelta(days=2)).isoformat())
        undated = make_order("o3", due_date=None)
        assert scanner.scan([later, overdue, undated], fixed_now) == []

    def test_uses_expected_delivery_fallback(self, scanner, make_order, fixed_now):
        order = make_order(due_date=None, expected_delivery=(fixed_now + timedelta(days=2)).isoformat())
        assert len(scanner.scan([order], fixed_now)) == 1

    def test_terminal_orders_release_their_flag(self, scanner, make_order, fixed_now):
        due = (fixed_now + timedelta(days=1)).isoformat()
        scanner.scan([make_order(due_date=due)], fixed_now)
        assert scanner.scan([make_order(due_date=due, status="delivered")], fixed_now) == []
        assert "o1" not in scanner.notified

    def test_urgency_threshold(self, scanner):
        assert scanner.is_urgent(0)
        assert scanner.is_urgent(1)
        assert not scanner.is_urgent(2)


class TestOrderNotificationReconciler:
    """Scenario and property tests for the full snapshot pipeline"""

    def test_scenario_a_fresh_subscription_is_silent(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.CUSTOMER, clock=lambda: fixed_now)
        records = reconciler.process_snapshot([make_order(status="pending", progress=0)])
        assert records == []
        assert len(reconciler.previous_orders) == 1

    def test_scenario_b_tailor_confirms_on_customer_view(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.CUSTOMER, clock=lambda: fixed_now)
        reconciler.process_snapshot([make_order(status="pending", progress=0)])
        records = reconciler.process_snapshot([make_order(status="confirmed", progress=10, modified_by="tailor")])
        assert len(records) == 1
        assert records[0].title == "Order Confirmed"
        assert records[0].urgent is False

    def test_scenario_c_own_change_on_tailor_view(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.TAILOR, clock=lambda: fixed_now)
        reconciler.process_snapshot([make_order(status="pending", progress=0, modified_by="tailor")])
        records = reconciler.process_snapshot([make_order(status="confirmed", progress=10, modified_by="tailor")])
        assert records == []

    def test_scenario_d_due_in_exactly_two_days(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.TAILOR, warning_days=2, clock=lambda: fixed_now)
        snapshot = [make_order(due_date=(fixed_now + timedelta(days=2)).isoformat())]
        assert reconciler.process_snapshot(snapshot) == []

        records = reconciler.process_snapshot(snapshot)
        assert len(records) == 1
        assert records[0].type == NotificationType.DUE_SOON
        assert records[0].urgent is False

        assert reconciler.process_snapshot(snapshot) == []

    @pytest.mark.parametrize("status,urgent", [
        ("confirmed", False),
        ("in_progress", False),
        ("ready", True),
        ("delivered", False),
        ("cancelled", True),
    ])
    def test_one_record_per_status_change(self, make_order, fixed_now, status, urgent):
        reconciler = OrderNotificationReconciler(Party.CUSTOMER, clock=lambda: fixed_now)
        reconciler.process_snapshot([make_order()])
        records = reconciler.process_snapshot([make_order(status=status, modified_by="tailor")])
        assert len(records) == 1
        assert records[0].urgent is urgent

    def test_due_date_flags_survive_reset(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.TAILOR, clock=lambda: fixed_now)
        snapshot = [make_order(due_date=(fixed_now + timedelta(days=1)).isoformat())]
        reconciler.process_snapshot(snapshot)
        assert len(reconciler.process_snapshot(snapshot)) == 1

        reconciler.reset()
        reconciler.process_snapshot(snapshot)
        assert reconciler.process_snapshot(snapshot) == []

    def test_release_due_date_allows_reflagging(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.TAILOR, clock=lambda: fixed_now)
        snapshot = [make_order(due_date=fixed_now.isoformat())]
        reconciler.process_snapshot(snapshot)
        first = reconciler.process_snapshot(snapshot)
        assert first[0].title == "Order Due Today!"
        assert first[0].urgent is True

        reconciler.release_due_date("o1")
        assert len(reconciler.process_snapshot(snapshot)) == 1

    def test_notification_list_stays_bounded(self, make_order, fixed_now):
        reconciler = OrderNotificationReconciler(Party.TAILOR, clock=lambda: fixed_now)
        center = NotificationCenter(max_size=50)
        reconciler.process_snapshot([])

        orders = []
        for i in range(70):
            orders = [make_order(f"o{i}", modified_by="customer")] + orders
            center.add(reconciler.process_snapshot(orders))

        assert len(center.notifications) == 50
        assert center.unread_count == 50
        assert center.notifications[0].order_id == "o69"
