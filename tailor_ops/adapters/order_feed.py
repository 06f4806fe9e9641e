"""
Live order feed on top of Supabase Realtime.

Realtime delivers row-level change events; dashboards want the whole order
set. Each change event triggers a fresh select of everything the viewer can
see, so every delivery is a complete snapshot ordered newest first.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.models import Party, Viewer

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List[Dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]

FAILED_CHANNEL_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}


class FeedSubscription:
    """One open realtime channel delivering full snapshots for one viewer"""

    def __init__(self, client, viewer: Viewer, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self.client = client
        self.viewer = viewer
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.channel = None
        self.closed = False
        self._refresh_lock = asyncio.Lock()
        self._tasks: set = set()

    def _orders_query(self):
        query = self.client.table("orders").select("*")
        if self.viewer.role == Party.CUSTOMER:
            query = query.eq("customer_id", self.viewer.user_id)
        return query.order("created_at", desc=True)

    async def open(self) -> None:
        channel_filter = None
        if self.viewer.role == Party.CUSTOMER:
            channel_filter = f"customer_id=eq.{self.viewer.user_id}"

        self.channel = self.client.channel(f"orders-{self.viewer.role.value}-{self.viewer.user_id}")
        self.channel.on_postgres_changes(
            "*",
            schema="public",
            table="orders",
            filter=channel_filter,
            callback=self._on_change,
        )
        await self.channel.subscribe(self._on_status)
        logger.info(f"📡 Order feed opened for {self.viewer.role.value} {self.viewer.user_id}")

        await self.refresh()

    async def refresh(self) -> None:
        """Select the viewer's full order set and deliver it"""
        if self.closed:
            return
        async with self._refresh_lock:
            try:
                result = await self._orders_query().execute()
            except Exception as e:
                logger.error(f"❌ Order snapshot query failed: {e}")
                if not self.closed:
                    self.on_error(e)
                return
            if not self.closed:
                self.on_snapshot(list(result.data or []))

    def _on_change(self, payload: Dict[str, Any]) -> None:
        if self.closed:
            return
        logger.debug(f"Order change event: {payload.get('eventType', payload.get('type', 'unknown'))}")
        task = asyncio.ensure_future(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_status(self, status: Any, err: Optional[Exception] = None) -> None:
        state = str(getattr(status, "value", status))
        if state in FAILED_CHANNEL_STATES and not self.closed:
            logger.warning(f"⚠️ Order feed channel {state}: {err}")
            self.on_error(err or ConnectionError(f"Realtime channel {state}"))

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        if self.channel is not None:
            try:
                await self.client.remove_channel(self.channel)
            except Exception as e:
                logger.warning(f"⚠️ Failed to remove order channel cleanly: {e}")
        logger.info(f"🔌 Order feed closed for {self.viewer.role.value} {self.viewer.user_id}")


class SupabaseOrderFeed:
    """Factory for per-viewer order subscriptions"""

    def __init__(self, client):
        self.client = client

    async def subscribe(
        self,
        viewer: Viewer,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        subscription = FeedSubscription(self.client, viewer, on_snapshot, on_error)
        try:
            await subscription.open()
        except Exception:
            await subscription.unsubscribe()
            raise
        return subscription
