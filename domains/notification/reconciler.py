import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from core.cache import OrderCache
from core.clock import utcnow
from core.exceptions import InvalidTransition, TransactionExists
from core.telemetry import get_tracer
from domains.audit.service import log_audit
from domains.notification.parser import parse_notification
from domains.notification.schemas import NotificationOutcome, NotificationResult
from domains.order.model import (
    Order,
    OrderStatus,
    Transaction,
    UnmappedReason,
)
from domains.order.store import OrderStore

logger = logging.getLogger(__name__)

LATE_WINDOW = timedelta(seconds=120)
UNKNOWN_PAYER = "Unknown"


@dataclass
class ReconcileResult:
    outcome: NotificationOutcome
    message: str
    order_id: Optional[str] = None
    order_status: Optional[OrderStatus] = None
    merchant_id: Optional[str] = None
    order: Optional[Order] = None
    transaction: Optional[Transaction] = None

    def to_response(self) -> NotificationResult:
        return NotificationResult(
            status=self.outcome,
            message=self.message,
            order_id=self.order_id,
            order_status=self.order_status,
        )


def is_late(order: Order, now: datetime, late_window: timedelta = LATE_WINDOW) -> bool:
    """Exactly `late_window` after pending_at is still on time."""
    if order.pending_at is None:
        # 從沒進過 PENDING，視為無限久
        return True
    return (now - order.pending_at) > late_window


class ReconciliationEngine:
    """
    Match a forwarded payment notification to an order and classify it:
    COMPLETED, LATE_PAYMENT, DUPLICATE or UNMAPPED.

    Every path ends in a structured result. The forwarder never retries, so a
    payment that cannot complete the order is still recorded (late) or
    quarantined (unmapped) rather than rejected.
    """

    def __init__(
        self,
        session: AsyncSession,
        late_window: timedelta = LATE_WINDOW,
        cache: Optional[OrderCache] = None,
    ) -> None:
        self.session = session
        self.store = OrderStore(session)
        self.late_window = late_window
        self.cache = cache

    async def reconcile(
        self, payload: Dict[str, Any], now: Optional[datetime] = None
    ) -> ReconcileResult:
        with get_tracer().start_as_current_span("notification.reconcile") as span:
            result = await self._reconcile(payload, now or utcnow())
            span.set_attribute("upi.outcome", result.outcome.value)
            if result.order_id:
                span.set_attribute("upi.order_id", result.order_id)
            return result

    async def _reconcile(self, payload: Dict[str, Any], now: datetime) -> ReconcileResult:
        parsed = parse_notification(payload)

        # 1. 抓不到 order id
        if parsed.order_id is None:
            await self.store.add_unmapped(payload, UnmappedReason.NO_ORDER_ID)
            await self.session.commit()
            logger.info(" 📭 [Reconcile] No order id in notification -> UNMAPPED")
            return ReconcileResult(
                NotificationOutcome.UNMAPPED, "No order ID found in notification"
            )

        order_id = parsed.order_id

        # 2. 找不到訂單
        order = await self.store.get(order_id)
        if order is None:
            await self.store.add_unmapped(
                payload, UnmappedReason.ORDER_NOT_FOUND, order_id=order_id
            )
            await self.session.commit()
            logger.info(f" 📭 [Reconcile] Order {order_id} not found -> UNMAPPED")
            return ReconcileResult(
                NotificationOutcome.UNMAPPED, "Order not found", order_id=order_id
            )

        merchant_id = order.merchant_id

        # 3. 已經有 Transaction -> 重送
        if await self.store.get_transaction(order_id) is not None:
            return await self._duplicate(order_id, merchant_id, payload)

        # 4. lateness
        late = is_late(order, now, self.late_window)
        payer_name = parsed.payer_name or UNKNOWN_PAYER

        # 5. 不論準不準時都記一筆 Transaction
        transaction = Transaction(
            order_id=order_id,
            merchant_id=merchant_id,
            payer_name=payer_name,
            notification_json=payload,
            is_late_payment=late,
            created_at=now,
        )
        try:
            await self.store.add_transaction(transaction)
        except TransactionExists:
            return await self._duplicate(order_id, merchant_id, payload)

        # 6. 準時 + PENDING -> COMPLETED
        if order.status == OrderStatus.PENDING and not late:
            try:
                order = await self.store.transition(
                    order_id, OrderStatus.COMPLETED, expected=OrderStatus.PENDING, now=now
                )
            except InvalidTransition as e:
                # expiry sweep 先搶到了；Transaction 還沒 commit，改記成 late
                logger.warning(
                    f"⚠️ [Reconcile] Lost race on {order_id} (now {e.current}), "
                    "recording as late payment"
                )
                transaction.is_late_payment = True
                refreshed = await self.store.get(order_id)
                if refreshed is not None:
                    order = refreshed
            else:
                log_audit(
                    self.session,
                    "PAYMENT_COMPLETED",
                    {"order_id": order_id, "payer_name": parsed.payer_name},
                    actor_id=merchant_id,
                )
                await self.session.commit()
                await self._invalidate(order_id)
                logger.info(f"✅ [Reconcile] Order {order_id} COMPLETED by {payer_name}")
                return ReconcileResult(
                    NotificationOutcome.COMPLETED,
                    "Payment recorded successfully",
                    order_id=order_id,
                    order_status=order.status,
                    merchant_id=merchant_id,
                    order=order,
                    transaction=transaction,
                )

        # 7. late，或訂單已不在 PENDING：狀態不動，留給人工處理
        status = order.status
        log_audit(
            self.session,
            "LATE_PAYMENT",
            {
                "order_id": order_id,
                "payer_name": parsed.payer_name,
                "order_status": status.value,
            },
            actor_id=merchant_id,
        )
        await self.session.commit()
        await self._invalidate(order_id)
        logger.warning(f"⏰ [Reconcile] Late payment on {order_id} (order {status.value})")
        return ReconcileResult(
            NotificationOutcome.LATE_PAYMENT,
            "Payment recorded as late",
            order_id=order_id,
            order_status=status,
            merchant_id=merchant_id,
            order=order,
            transaction=transaction,
        )

    async def _duplicate(
        self, order_id: str, merchant_id: str, payload: Dict[str, Any]
    ) -> ReconcileResult:
        log_audit(
            self.session,
            "DUPLICATE_NOTIFICATION",
            {"order_id": order_id, "notification": payload},
            actor_id=merchant_id,
        )
        await self.session.commit()
        logger.info(f" ♻️ [Reconcile] Order {order_id} already paid -> DUPLICATE")
        return ReconcileResult(
            NotificationOutcome.DUPLICATE,
            "Payment already recorded",
            order_id=order_id,
            merchant_id=merchant_id,
        )

    async def _invalidate(self, order_id: str) -> None:
        if self.cache:
            await self.cache.invalidate(order_id)
