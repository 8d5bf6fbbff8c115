import json
from typing import Any, Awaitable, Callable, Dict, Optional

from core.security import compute_signature
from domains.merchant.model import Merchant
from domains.order.model import Order

ADMIN_KEY = "test-admin-key"

MakeOrder = Callable[..., Awaitable[Order]]


def encode(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def signed_headers(
    merchant: Merchant, body: bytes = b"", origin: Optional[str] = None
) -> Dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-API-Key": merchant.api_key,
        "X-Signature": compute_signature(merchant.api_secret, body),
    }
    if origin:
        headers["Origin"] = origin
    return headers


def payment_notification(order_id: str, payer: str = "Ravi Kumar") -> Dict[str, Any]:
    """Android extras the way the listener app forwards them"""
    return {
        "package": "com.phonepe.app",
        "android.title": f"{payer} paid you ₹150.00",
        "android.text": f"Payment received for order {order_id}",
    }
