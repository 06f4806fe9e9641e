import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from tailor_ops.core.models import Party, Viewer
from tailor_ops.core.notifications import NotificationCenter
from tailor_ops.core.order_differ import OrderNotificationReconciler
from tailor_ops.services.order_watcher import OrderWatcher, WatcherRegistry, WatcherState


class FakeFeed:
    """Records subscriptions and lets tests push snapshots and errors"""

    def __init__(self):
        self.subscriptions = []
        self.fail_next = None

    async def subscribe(self, viewer, on_snapshot, on_error):
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        handle = Mock()
        handle.unsubscribe = AsyncMock()
        handle.on_snapshot = on_snapshot
        handle.on_error = on_error
        self.subscriptions.append(handle)
        return handle

    @property
    def latest(self):
        return self.subscriptions[-1]

    def open_count(self):
        return sum(1 for h in self.subscriptions if not h.unsubscribe.await_count)


class TestOrderWatcher:
    """Unit tests for the subscription lifecycle"""

    @pytest.fixture
    def feed(self):
        return FakeFeed()

    @pytest.fixture
    def watcher(self, feed, customer_viewer, fixed_now):
        reconciler = OrderNotificationReconciler(Party.CUSTOMER, clock=lambda: fixed_now)
        return OrderWatcher(customer_viewer, feed, reconciler, NotificationCenter(), reconnect_delay=0.01)

    @pytest.mark.asyncio
    async def test_start_activates(self, watcher, feed):
        await watcher.start()
        assert watcher.state == WatcherState.ACTIVE
        assert len(feed.subscriptions) == 1

    @pytest.mark.asyncio
    async def test_snapshots_become_notifications(self, watcher, feed, make_order):
        received = []
        watcher.add_listener(received.append)
        await watcher.start()

        feed.latest.on_snapshot([make_order()])
        feed.latest.on_snapshot([make_order(status="ready", progress=90, modified_by="tailor")])

        assert len(received) == 1
        assert received[0][0].title == "Order Ready!"
        assert watcher.notification_center.unread_count == 1
        assert watcher.orders[0]["status"] == "ready"

    @pytest.mark.asyncio
    async def test_async_listener_is_awaited(self, watcher, feed, make_order):
        listener = AsyncMock()
        watcher.add_listener(listener)
        await watcher.start()

        feed.latest.on_snapshot([make_order()])
        feed.latest.on_snapshot([make_order(status="confirmed", modified_by="tailor")])
        await asyncio.sleep(0)

        listener.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scenario_e_listener_failure_is_contained(self, watcher, feed, make_order):
        calls = []

        def broken_listener(records):
            calls.append(records)
            raise RuntimeError("render failed")

        watcher.add_listener(broken_listener)
        await watcher.start()

        feed.latest.on_snapshot([make_order()])
        feed.latest.on_snapshot([make_order(status="confirmed", modified_by="tailor")])
        feed.latest.on_snapshot([make_order(status="ready", modified_by="tailor")])

        assert len(calls) == 2
        assert watcher.state == WatcherState.ACTIVE
        assert watcher.notification_center.unread_count == 2

    @pytest.mark.asyncio
    async def test_processing_failure_is_contained(self, watcher, feed, make_order):
        await watcher.start()
        watcher.reconciler.process_snapshot = Mock(side_effect=[ValueError("bad row"), []])

        feed.latest.on_snapshot([make_order()])
        feed.latest.on_snapshot([make_order()])

        assert watcher.reconciler.process_snapshot.call_count == 2
        assert watcher.state == WatcherState.ACTIVE

    @pytest.mark.asyncio
    async def test_restart_keeps_single_subscription(self, watcher, feed):
        await watcher.start()
        await watcher.start()
        assert len(feed.subscriptions) == 2
        feed.subscriptions[0].unsubscribe.assert_awaited_once()
        assert feed.open_count() == 1

    @pytest.mark.asyncio
    async def test_error_reconnects_with_fresh_baseline(self, watcher, feed, make_order):
        received = []
        watcher.add_listener(received.append)
        await watcher.start()
        feed.latest.on_snapshot([make_order()])

        feed.latest.on_error(ConnectionError("socket closed"))
        assert watcher.state == WatcherState.ERROR

        await asyncio.sleep(0.05)
        assert watcher.state == WatcherState.ACTIVE
        assert len(feed.subscriptions) == 2
        feed.subscriptions[0].unsubscribe.assert_awaited_once()

        # First delivery after reconnect is a silent baseline
        feed.latest.on_snapshot([make_order(status="confirmed", modified_by="tailor")])
        assert received == []

    @pytest.mark.asyncio
    async def test_failed_subscribe_schedules_retry(self, watcher, feed):
        feed.fail_next = ConnectionError("offline")
        await watcher.start()
        assert watcher.state == WatcherState.ERROR

        await asyncio.sleep(0.05)
        assert watcher.state == WatcherState.ACTIVE
        assert len(feed.subscriptions) == 1

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_reconnect(self, watcher, feed):
        await watcher.start()
        feed.latest.on_error(ConnectionError("socket closed"))
        await watcher.stop()

        await asyncio.sleep(0.05)
        assert watcher.state == WatcherState.UNSUBSCRIBED
        assert len(feed.subscriptions) == 1

    @pytest.mark.asyncio
    async def test_no_delivery_after_stop(self, watcher, feed, make_order):
        received = []
        watcher.add_listener(received.append)
        await watcher.start()
        handle = feed.latest
        handle.on_snapshot([make_order()])
        await watcher.stop()

        handle.on_snapshot([make_order(status="ready", modified_by="tailor")])
        assert received == []
        handle.unsubscribe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remove_listener(self, watcher, feed, make_order):
        received = []
        watcher.add_listener(received.append)
        watcher.remove_listener(received.append)
        await watcher.start()
        feed.latest.on_snapshot([make_order()])
        feed.latest.on_snapshot([make_order(status="ready", modified_by="tailor")])
        assert received == []


class TestWatcherRegistry:
    """One watcher per viewer"""

    @pytest.fixture
    def feed(self):
        return FakeFeed()

    @pytest.fixture
    def registry(self, feed):
        def factory(viewer):
            return OrderWatcher(viewer, feed, OrderNotificationReconciler(viewer.role), NotificationCenter())
        return WatcherRegistry(factory)

    @pytest.mark.asyncio
    async def test_start_replaces_existing_watcher(self, registry, feed, tailor_viewer):
        first = await registry.start(tailor_viewer)
        second = await registry.start(tailor_viewer)

        assert first is not second
        assert first.state == WatcherState.UNSUBSCRIBED
        assert registry.get(tailor_viewer.user_id) is second
        assert feed.open_count() == 1

    @pytest.mark.asyncio
    async def test_stop_all(self, registry, feed, tailor_viewer, customer_viewer):
        await registry.start(tailor_viewer)
        await registry.start(customer_viewer)
        await registry.stop_all()

        assert registry.watchers == {}
        assert feed.open_count() == 0

    @pytest.mark.asyncio
    async def test_stop_unknown_viewer_is_noop(self, registry):
        await registry.stop("nobody")
        assert registry.get("nobody") is None


class BlockingFeed(FakeFeed):
    """subscribe() hangs until the test releases it"""

    def __init__(self):
        super().__init__()
        self._release = None
        self._entered = None

    # Events are created inside the test loop
    @property
    def release(self):
        if self._release is None:
            self._release = asyncio.Event()
        return self._release

    @property
    def entered(self):
        if self._entered is None:
            self._entered = asyncio.Event()
        return self._entered

    async def subscribe(self, viewer, on_snapshot, on_error):
        self.entered.set()
        await self.release.wait()
        return await super().subscribe(viewer, on_snapshot, on_error)


class TestTeardownDuringSubscribe:
    """Teardown while the feed is still opening"""

    @pytest.fixture
    def feed(self):
        return BlockingFeed()

    @pytest.fixture
    def watcher(self, feed, customer_viewer, fixed_now):
        reconciler = OrderNotificationReconciler(Party.CUSTOMER, clock=lambda: fixed_now)
        return OrderWatcher(customer_viewer, feed, reconciler, NotificationCenter(), reconnect_delay=0.01)

    @pytest.mark.asyncio
    async def test_stop_while_opening_closes_late_handle(self, watcher, feed, make_order):
        received = []
        watcher.add_listener(received.append)
        opening = asyncio.ensure_future(watcher.start())
        await feed.entered.wait()

        await watcher.stop()
        feed.release.set()
        await opening

        assert watcher.subscription is None
        assert watcher.state == WatcherState.UNSUBSCRIBED
        feed.latest.unsubscribe.assert_awaited_once()

        feed.latest.on_snapshot([make_order()])
        feed.latest.on_snapshot([make_order(status="ready", modified_by="tailor")])
        assert received == []

    @pytest.mark.asyncio
    async def test_overlapping_starts_keep_one_handle(self, watcher, feed):
        first = asyncio.ensure_future(watcher.start())
        second = asyncio.ensure_future(watcher.start())
        await asyncio.sleep(0)
        feed.release.set()
        await asyncio.gather(first, second)

        assert len(feed.subscriptions) == 2
        assert feed.open_count() == 1
        assert watcher.subscription is not None
        assert watcher.subscription.unsubscribe.await_count == 0
        assert watcher.state == WatcherState.ACTIVE

    @pytest.mark.asyncio
    async def test_stop_during_reconnect_subscribe(self, watcher, feed):
        feed.release.set()
        await watcher.start()
        feed.release.clear()
        feed.entered.clear()

        feed.latest.on_error(ConnectionError("socket closed"))
        await feed.entered.wait()
        await watcher.stop()
        feed.release.set()
        await asyncio.sleep(0.01)

        assert watcher.state == WatcherState.UNSUBSCRIBED
        assert watcher.subscription is None
        assert feed.open_count() == 0
