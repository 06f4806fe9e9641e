"""
Order write paths for customers and the tailor.

Every write stamps modified_by and modification_reason so the other party's
order watcher can attribute the change.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..adapters.email_adapter import EmailAdapter, build_order_email
from ..core.exceptions import OrderValidationError
from ..core.models import (
    EARLY_STAGE_STATUSES,
    CustomerProfile,
    ModificationReason,
    OrderDraft,
    OrderStatus,
    Party,
    is_terminal,
)
from ..core.order_lifecycle import (
    calculate_price,
    due_date_fields,
    has_measurements,
    progress_for_status,
    validate_measurements,
    validate_progress,
    validate_status,
)
from ..core.timestamps import utc_now
from .photo_storage import normalize_photos

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(
        self,
        client,
        email_adapter: Optional[EmailAdapter] = None,
        clock: Callable[[], datetime] = utc_now,
        max_photos: int = 5,
    ):
        self.client = client
        self.email_adapter = email_adapter
        self.clock = clock
        self.max_photos = max_photos

    # ===== HELPERS =====

    def _attribution(self, party: Party, reason: ModificationReason) -> Dict[str, str]:
        now = self.clock().isoformat()
        return {
            "updated_at": now,
            "last_modified": now,
            "modified_by": party.value,
            "modification_reason": reason.value,
        }

    def _validate_draft(self, draft: OrderDraft) -> Dict[str, str]:
        if not draft.garment_type or not draft.garment_type.strip():
            raise OrderValidationError("Please choose a garment type", code="missing_garment_type")
        self._check_photo_count(len(draft.inspiration_photos))
        return validate_measurements(draft.garment_type, draft.measurements)

    def _check_photo_count(self, count: int) -> None:
        if count > self.max_photos:
            raise OrderValidationError(
                f"An order can have at most {self.max_photos} inspiration photos", code="too_many_photos"
            )

    async def _get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        result = await self.client.table("orders").select("*").eq("id", order_id).execute()
        return result.data[0] if result.data else None

    async def _get_open_order(self, order_id: str) -> Dict[str, Any]:
        """Current row; delivered and cancelled orders are closed to further writes"""
        current = await self._get_order(order_id)
        if current is None:
            raise OrderValidationError(f"Order {order_id} not found", code="order_not_found")
        if is_terminal(current.get("status")):
            raise OrderValidationError(
                f"Order {order_id} is {current['status']} and can no longer be changed", code="order_closed"
            )
        return current

    async def _update_order(self, order_id: str, update_data: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.client.table("orders").update(update_data).eq("id", order_id).execute()
        if not result.data:
            raise OrderValidationError(f"Order {order_id} not found", code="order_not_found")
        return result.data[0]

    def _new_order_record(
        self,
        customer: CustomerProfile,
        draft: OrderDraft,
        measurements: Dict[str, str],
        party: Party,
        reason: ModificationReason,
    ) -> Dict[str, Any]:
        now = self.clock()
        price = calculate_price(draft.garment_type, draft.urgency)
        record = {
            "customer_id": customer.id,
            "customer_name": customer.name,
            "customer_email": customer.email,
            "customer_phone": customer.phone,
            "garment_type": draft.garment_type,
            "fabric": draft.fabric,
            "special_instructions": draft.special_instructions,
            "urgency": draft.urgency.value,
            "measurements": measurements,
            "inspiration_photos": [photo.model_dump() for photo in draft.inspiration_photos],
            "status": OrderStatus.PENDING.value,
            "progress": 0,
            "price": price,
            "total_amount": price,
            "order_date": now.date().isoformat(),
            "created_at": now.isoformat(),
            "items": [{
                "garment_type": draft.garment_type,
                "quantity": 1,
                "price": price,
                "measurements": measurements,
                "fabric": draft.fabric,
                "special_instructions": draft.special_instructions,
            }],
        }
        record.update(due_date_fields(draft.urgency, now))
        record.update(self._attribution(party, reason))
        return record

    # ===== ORDER CREATION =====

    async def create_order(self, customer: CustomerProfile, draft: OrderDraft) -> Dict[str, Any]:
        """Place a new order on behalf of the signed-in customer"""
        try:
            measurements = self._validate_draft(draft)
            record = self._new_order_record(
                customer, draft, measurements, Party.CUSTOMER, ModificationReason.NEW_ORDER
            )

            if draft.remember_measurements and has_measurements(measurements):
                saved = await self.save_customer_measurements(customer.id, draft.garment_type, measurements)
                if not saved["success"]:
                    logger.warning(f"⚠️ Order placed without saving measurements: {saved['error']}")

            result = await self.client.table("orders").insert(record).execute()
            order = result.data[0] if result.data else record

            logger.info(f"✅ Order created for customer {customer.id}: {draft.garment_type}")
            return {"success": True, "order_id": order.get("id"), "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error creating order: {e}")
            return {"success": False, "error": str(e)}

    async def create_manual_order(self, customer: CustomerProfile, draft: OrderDraft) -> Dict[str, Any]:
        """Order entered by the tailor (walk-ins, phone orders)"""
        try:
            measurements = self._validate_draft(draft)
            record = self._new_order_record(
                customer, draft, measurements, Party.TAILOR, ModificationReason.MANUAL_ORDER
            )
            result = await self.client.table("orders").insert(record).execute()
            order = result.data[0] if result.data else record

            logger.info(f"✅ Manual order created for {customer.name}: {draft.garment_type}")
            return {"success": True, "order_id": order.get("id"), "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error creating manual order: {e}")
            return {"success": False, "error": str(e)}

    # ===== CUSTOMER EDITS =====

    async def _get_editable_order(self, order_id: str, customer_id: Optional[str]) -> Dict[str, Any]:
        current = await self._get_order(order_id)
        if current is None or (customer_id and current.get("customer_id") != customer_id):
            raise OrderValidationError(f"Order {order_id} not found", code="order_not_found")
        if current.get("status") not in EARLY_STAGE_STATUSES:
            raise OrderValidationError(
                "This order is already in production and can no longer be edited",
                code="order_locked",
            )
        return current

    async def get_editable_order(self, order_id: str, customer_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            order = await self._get_editable_order(order_id, customer_id)
            return {"success": True, "order_id": order_id, "data": order}
        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error loading order {order_id}: {e}")
            return {"success": False, "error": str(e)}

    async def update_order_by_customer(
        self, order_id: str, draft: OrderDraft, customer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Customer edits to an order that has not started production"""
        try:
            measurements = self._validate_draft(draft)
            current = await self._get_editable_order(order_id, customer_id)

            update_data = {
                "garment_type": draft.garment_type,
                "fabric": draft.fabric,
                "special_instructions": draft.special_instructions,
                "urgency": draft.urgency.value,
                "measurements": measurements,
                "inspiration_photos": [photo.model_dump() for photo in draft.inspiration_photos],
            }
            if draft.urgency.value != current.get("urgency"):
                update_data.update(due_date_fields(draft.urgency, self.clock()))
            update_data.update(self._attribution(Party.CUSTOMER, ModificationReason.CUSTOMER_EDIT))

            order = await self._update_order(order_id, update_data)
            logger.info(f"✅ Order {order_id} updated by customer")
            return {"success": True, "order_id": order_id, "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error updating order {order_id}: {e}")
            return {"success": False, "error": str(e)}

    async def attach_photos(
        self, order_id: str, photos: List[Dict[str, Any]], customer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Append uploaded photo entries to the order"""
        try:
            current = await self._get_editable_order(order_id, customer_id)
            merged = normalize_photos(current.get("inspiration_photos")) + list(photos)
            self._check_photo_count(len(merged))

            update_data = {"inspiration_photos": merged}
            update_data.update(self._attribution(Party.CUSTOMER, ModificationReason.CUSTOMER_EDIT))
            order = await self._update_order(order_id, update_data)

            logger.info(f"📷 {len(photos)} inspiration photos added to order {order_id}")
            return {"success": True, "order_id": order_id, "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error attaching photos to {order_id}: {e}")
            return {"success": False, "error": str(e)}

    async def detach_photo(self, order_id: str, url: str, customer_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            current = await self._get_editable_order(order_id, customer_id)
            photos = normalize_photos(current.get("inspiration_photos"))
            remaining = [photo for photo in photos if photo["url"] != url]
            if len(remaining) == len(photos):
                raise OrderValidationError("Photo not found on this order", code="photo_not_found")

            update_data = {"inspiration_photos": remaining}
            update_data.update(self._attribution(Party.CUSTOMER, ModificationReason.CUSTOMER_EDIT))
            order = await self._update_order(order_id, update_data)

            logger.info(f"🗑️ Inspiration photo removed from order {order_id}")
            return {"success": True, "order_id": order_id, "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error removing photo from {order_id}: {e}")
            return {"success": False, "error": str(e)}

    # ===== TAILOR UPDATES =====

    def _status_email_sender(self, status: str):
        if self.email_adapter is None:
            return None
        return {
            OrderStatus.READY.value: self.email_adapter.send_order_ready_email,
            OrderStatus.DELIVERED.value: self.email_adapter.send_order_delivered_email,
        }.get(status)

    async def update_status(self, order_id: str, new_status: str, new_progress: Optional[int] = None) -> Dict[str, Any]:
        """Tailor status change; ready/delivered also email the customer.

        Email failures are reported in the result but never undo the update.
        """
        try:
            status = validate_status(new_status)
            await self._get_open_order(order_id)
            update_data = {
                "status": status,
                "progress": progress_for_status(status, new_progress),
            }
            update_data.update(self._attribution(Party.TAILOR, ModificationReason.STATUS_UPDATE))

            order = await self._update_order(order_id, update_data)
            logger.info(f"✅ Order {order_id} status -> {status} ({update_data['progress']}%)")
            response = {"success": True, "order_id": order_id, "data": order}

            send_email = self._status_email_sender(status)
            if send_email is not None:
                email_result = await send_email(build_order_email(order))
                response["email_sent"] = email_result["success"]
                if not email_result["success"]:
                    response["email_error"] = email_result["error"]
            return response

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error updating order status {order_id}: {e}")
            return {"success": False, "error": str(e)}

    async def update_progress(self, order_id: str, progress: Any) -> Dict[str, Any]:
        try:
            update_data = {"progress": validate_progress(progress)}
            await self._get_open_order(order_id)
            update_data.update(self._attribution(Party.TAILOR, ModificationReason.PROGRESS_UPDATE))

            order = await self._update_order(order_id, update_data)
            logger.info(f"✅ Order {order_id} progress -> {update_data['progress']}%")
            return {"success": True, "order_id": order_id, "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error updating progress for {order_id}: {e}")
            return {"success": False, "error": str(e)}

    async def record_measurements(self, order_id: str, measurements: Dict[str, Any]) -> Dict[str, Any]:
        """Measurements taken by the tailor at a fitting"""
        try:
            current = await self._get_open_order(order_id)

            update_data = {"measurements": validate_measurements(current.get("garment_type"), measurements)}
            update_data.update(self._attribution(Party.TAILOR, ModificationReason.MEASUREMENT_UPDATE))

            order = await self._update_order(order_id, update_data)
            logger.info(f"✅ Measurements recorded for order {order_id}")
            return {"success": True, "order_id": order_id, "data": order}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error recording measurements for {order_id}: {e}")
            return {"success": False, "error": str(e)}

    # ===== CUSTOMER PROFILE =====

    async def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        try:
            result = await self.client.table("customers").select("*").eq("id", customer_id).execute()
            if not result.data:
                return None
            row = result.data[0]
            return CustomerProfile(
                id=row["id"],
                name=row.get("name") or "",
                phone=row.get("phone") or "",
                email=row.get("email") or "",
                saved_measurements=row.get("saved_measurements") or {},
            )
        except Exception as e:
            logger.error(f"❌ Error getting customer {customer_id}: {e}")
            return None

    async def save_customer_measurements(
        self, customer_id: str, garment_type: str, measurements: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Remember measurements on the customer profile, keyed by garment type"""
        try:
            cleaned = validate_measurements(garment_type, measurements)
            result = await self.client.table("customers").select("saved_measurements").eq("id", customer_id).execute()
            if not result.data:
                raise OrderValidationError(f"Customer {customer_id} not found", code="customer_not_found")

            saved = dict(result.data[0].get("saved_measurements") or {})
            saved[garment_type] = cleaned
            await self.client.table("customers").update({
                "saved_measurements": saved,
                "updated_at": self.clock().isoformat(),
            }).eq("id", customer_id).execute()

            logger.info(f"✅ Saved {garment_type} measurements for customer {customer_id}")
            return {"success": True, "saved_measurements": saved}

        except OrderValidationError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Error saving measurements for {customer_id}: {e}")
            return {"success": False, "error": str(e)}
