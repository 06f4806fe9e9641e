"""
Order status emails via the EmailJS REST API
"""

import logging
import re
from typing import Any, Dict, Optional

import httpx

from ..config.settings import Settings
from ..core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["customer_name", "customer_email", "order_number", "items", "total"]
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

STATUS_MESSAGES = {
    "ready": (
        "Excellent news! Your custom tailored garment is now ready for pickup. Our master tailor "
        "has put the finishing touches on your piece, and we're excited for you to see the result."
    ),
    "delivered": (
        "Your custom tailored garment has been successfully delivered! We hope you absolutely love "
        "how it fits and looks. Thank you for trusting us with your tailoring needs."
    ),
    "in_progress": (
        "Your tailoring order is currently being worked on by our skilled craftsmen. We're taking "
        "great care to ensure every detail meets our high standards."
    ),
    "cancelled": (
        "Your tailoring order has been cancelled. If this was unexpected or you have any questions, "
        "please don't hesitate to contact us immediately."
    ),
    "alterations_needed": (
        "We've reviewed your garment and some minor alterations are needed to ensure the perfect fit. "
        "We'll contact you shortly to schedule a fitting."
    ),
    "measurements_required": (
        "We need to schedule a measurement session to proceed with your custom tailoring. "
        "Please contact us to arrange an appointment."
    ),
}
DEFAULT_STATUS_MESSAGE = (
    "Your tailoring order status has been updated. Please contact us if you have any questions."
)


def get_status_message(status: str) -> str:
    return STATUS_MESSAGES.get((status or "").lower(), DEFAULT_STATUS_MESSAGE)


def validate_order_data(order_data: Dict[str, Any]) -> bool:
    """Check required email fields and the recipient address"""
    missing = [name for name in REQUIRED_FIELDS if not order_data.get(name)]
    if missing:
        raise EmailDeliveryError(f"Missing required fields: {', '.join(missing)}", code="missing_fields")

    if not EMAIL_PATTERN.match(str(order_data["customer_email"])):
        raise EmailDeliveryError("Invalid email address", code="invalid_email")
    return True


def build_order_email(order: Dict[str, Any]) -> Dict[str, Any]:
    """Email fields for an order row"""
    items = order.get("items") or []
    if items:
        description = ", ".join(
            f"{item.get('quantity', 1)} x {item.get('garment_type', 'Garment')}" for item in items
        )
    else:
        description = order.get("garment_type") or ""

    order_id = str(order.get("id") or "")
    return {
        "customer_name": order.get("customer_name"),
        "customer_email": order.get("customer_email"),
        "order_number": order_id[:8].upper(),
        "items": description,
        "total": order.get("total_amount") or order.get("price"),
    }


class EmailAdapter:
    """Sends order status emails; every failure is reported, never raised"""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http_client = http_client
        self.enabled = bool(settings.EMAILJS_SERVICE_ID and settings.EMAILJS_TEMPLATE_ID and settings.EMAILJS_PUBLIC_KEY)
        if not self.enabled:
            logger.warning("EmailJS not configured - status emails are disabled")

    def _template_params(self, order_data: Dict[str, Any], status: str) -> Dict[str, Any]:
        return {
            "customer_name": order_data["customer_name"],
            "order_number": order_data["order_number"],
            "status": status,
            "name": self.settings.SHOP_NAME,
            "email": order_data["customer_email"],
            "order_items": order_data["items"],
            "order_total": order_data["total"],
            "status_message": get_status_message(status),
        }

    async def send_order_status_email(self, order_data: Dict[str, Any], status: str) -> Dict[str, Any]:
        """Send a status email for one order"""
        try:
            if not self.enabled:
                raise EmailDeliveryError("Email service not configured", code="not_configured")

            validate_order_data(order_data)

            payload = {
                "service_id": self.settings.EMAILJS_SERVICE_ID,
                "template_id": self.settings.EMAILJS_TEMPLATE_ID,
                "user_id": self.settings.EMAILJS_PUBLIC_KEY,
                "template_params": self._template_params(order_data, status),
            }
            if self.settings.EMAILJS_PRIVATE_KEY:
                payload["accessToken"] = self.settings.EMAILJS_PRIVATE_KEY

            if self.http_client is not None:
                response = await self.http_client.post(self.settings.EMAIL_API_URL, json=payload, timeout=10)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.settings.EMAIL_API_URL, json=payload, timeout=10)

            if response.status_code != 200:
                raise EmailDeliveryError(
                    f"Email API returned HTTP {response.status_code}: {response.text}",
                    code="api_error",
                )

            logger.info(f"✅ '{status}' email sent for order {order_data['order_number']}")
            return {"success": True, "status": status, "order_number": order_data["order_number"]}

        except EmailDeliveryError as e:
            logger.error(f"❌ Status email not sent: {e.message}")
            return {"success": False, "error": e.message, "code": e.code}
        except httpx.HTTPError as e:
            logger.error(f"❌ Status email request failed: {e}")
            return {"success": False, "error": str(e), "code": "network_error"}

    async def send_order_ready_email(self, order_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send_order_status_email(order_data, "ready")

    async def send_order_delivered_email(self, order_data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.send_order_status_email(order_data, "delivered")
