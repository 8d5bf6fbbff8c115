import json
import logging
from typing import Any, Dict, Optional

import httpx

from core.security import compute_signature
from domains.order.model import Order, Transaction
from domains.order.upi import to_major_units

logger = logging.getLogger(__name__)


def build_callback_payload(
    event: str, order: Order, transaction: Optional[Transaction] = None
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "event": event,
        "order_id": order.order_id,
        "status": order.status.public.value,
        "internal_status": order.status.value,
        "amount": to_major_units(order.amount),
    }
    if transaction is not None:
        payload["payer_name"] = transaction.payer_name
        payload["is_late_payment"] = transaction.is_late_payment
    return payload


class MerchantNotifier:
    """
    主動回饋到商家的 webhook_url。只送一次：失敗只記 log，不重試。
    """

    def __init__(
        self, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.timeout = timeout
        self._client = client

    async def send(self, url: str, secret: str, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode(
            "utf-8"
        )
        headers = {
            "Content-Type": "application/json",
            "X-Signature": compute_signature(secret, body),
        }
        logger.info(f" 📞 [Callback] Notifying {url} for {payload.get('order_id')}...")
        try:
            if self._client is not None:
                response = await self._client.post(url, content=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, content=body, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f" ❌ [Callback] Failed to notify {url}: {e}")
            return False

        if response.is_success:
            logger.info(" ✅ [Callback] Notification delivered.")
            return True
        logger.warning(f" ⚠️ [Callback] Merchant responded {response.status_code}.")
        return False
