"""
Order watcher: owns the live order subscription for one viewer session and
feeds every snapshot through the notification reconciler.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..core.models import Viewer
from ..core.notifications import NotificationCenter, NotificationRecord
from ..core.order_differ import OrderNotificationReconciler

logger = logging.getLogger(__name__)

NotificationListener = Callable[[List[NotificationRecord]], Union[None, Awaitable[None]]]


class WatcherState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"
    RECONNECTING = "reconnecting"


class OrderWatcher:
    """Subscription lifecycle for one viewer.

    At most one feed handle is open at a time. Transport errors drop the
    handle and resubscribe after reconnect_delay; the first snapshot after a
    resubscribe is a silent baseline.
    """

    def __init__(
        self,
        viewer: Viewer,
        feed,
        reconciler: OrderNotificationReconciler,
        notification_center: NotificationCenter,
        reconnect_delay: float = 5.0,
    ):
        self.viewer = viewer
        self.feed = feed
        self.reconciler = reconciler
        self.notification_center = notification_center
        self.reconnect_delay = reconnect_delay

        self.state = WatcherState.UNSUBSCRIBED
        self.subscription = None
        self.orders: List[Dict[str, Any]] = []
        self.listeners: List[NotificationListener] = []
        self._reconnect_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._listener_tasks: set = set()

    def add_listener(self, listener: NotificationListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: NotificationListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    async def start(self) -> None:
        """Open the order subscription, replacing any existing one"""
        self._cancel_reconnect()
        await self._close_subscription()
        await self._subscribe()

    async def stop(self) -> None:
        """Tear down on sign-out or when the viewer navigates away"""
        self._generation += 1
        self._cancel_reconnect()
        await self._close_subscription()
        self.state = WatcherState.UNSUBSCRIBED
        logger.info(f"🛑 Order watcher stopped for {self.viewer.user_id}")

    async def _subscribe(self) -> None:
        self._generation += 1
        generation = self._generation
        self.state = WatcherState.SUBSCRIBING
        self.reconciler.reset()

        def on_snapshot(orders: List[Dict[str, Any]]) -> None:
            if generation == self._generation:
                self._handle_snapshot(orders)

        def on_error(error: Optional[Exception]) -> None:
            if generation == self._generation:
                self._handle_error(error)

        try:
            subscription = await self.feed.subscribe(self.viewer, on_snapshot, on_error)
        except Exception as e:
            if generation != self._generation:
                return
            logger.error(f"❌ Failed to open order subscription for {self.viewer.user_id}: {e}")
            self._handle_error(e)
            return

        # A stop() or newer start() ran while the feed was opening
        if generation != self._generation:
            logger.info(f"🔌 Discarding stale order subscription for {self.viewer.user_id}")
            await self._unsubscribe(subscription)
            return
        self.subscription = subscription
        if self.state == WatcherState.SUBSCRIBING:
            self.state = WatcherState.ACTIVE
        logger.info(f"✅ Order watcher active for {self.viewer.role.value} {self.viewer.user_id}")

    async def _close_subscription(self) -> None:
        subscription, self.subscription = self.subscription, None
        if subscription is not None:
            await self._unsubscribe(subscription)

    @staticmethod
    async def _unsubscribe(subscription) -> None:
        try:
            await subscription.unsubscribe()
        except Exception as e:
            logger.warning(f"⚠️ Error closing order subscription: {e}")

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

    def _handle_snapshot(self, orders: List[Dict[str, Any]]) -> None:
        if self.state not in (WatcherState.ACTIVE, WatcherState.SUBSCRIBING):
            return
        try:
            records = self.reconciler.process_snapshot(orders)
            self.orders = orders
            if records:
                self.notification_center.add(records)
                self._notify_listeners(records)
        except Exception as e:
            logger.error(f"❌ Error processing order snapshot for {self.viewer.user_id}: {e}")

    def _notify_listeners(self, records: List[NotificationRecord]) -> None:
        for listener in list(self.listeners):
            try:
                result = listener(records)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_tasks.discard)
            except Exception as e:
                logger.error(f"❌ Notification listener failed: {e}")

    def _handle_error(self, error: Optional[Exception]) -> None:
        if self.state == WatcherState.UNSUBSCRIBED:
            return
        logger.error(f"❌ Orders listener error for {self.viewer.user_id}: {error}")
        self.state = WatcherState.ERROR
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        await self._close_subscription()
        self.state = WatcherState.RECONNECTING
        logger.info(f"🔄 Reconnecting order feed for {self.viewer.user_id} in {self.reconnect_delay}s")
        await asyncio.sleep(self.reconnect_delay)
        if self.state != WatcherState.RECONNECTING:
            return
        self._reconnect_task = None
        await self._subscribe()

    def release_due_date(self, order_id: str) -> None:
        self.reconciler.release_due_date(order_id)


class WatcherRegistry:
    """One watcher per viewer; starting a new one stops the old one first"""

    def __init__(self, watcher_factory: Callable[[Viewer], OrderWatcher]):
        self.watcher_factory = watcher_factory
        self.watchers: Dict[str, OrderWatcher] = {}

    def get(self, user_id: str) -> Optional[OrderWatcher]:
        return self.watchers.get(user_id)

    async def start(self, viewer: Viewer) -> OrderWatcher:
        existing = self.watchers.pop(viewer.user_id, None)
        if existing is not None:
            await existing.stop()

        watcher = self.watcher_factory(viewer)
        self.watchers[viewer.user_id] = watcher
        await watcher.start()
        return watcher

    async def stop(self, user_id: str) -> None:
        watcher = self.watchers.pop(user_id, None)
        if watcher is not None:
            await watcher.stop()

    async def stop_all(self) -> None:
        for user_id in list(self.watchers):
            await self.stop(user_id)
