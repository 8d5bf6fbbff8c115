import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from core.cache import OrderCache
from core.clock import utcnow
from core.database import SessionFactory
from core.exceptions import InvalidTransition
from core.telemetry import get_tracer
from domains.audit.service import log_audit
from domains.merchant.store import MerchantStore
from domains.notification.callback import MerchantNotifier, build_callback_payload
from domains.order.model import OrderStatus
from domains.order.store import OrderStore

logger = logging.getLogger(__name__)


class ExpiryScheduler:
    """
    Background sweep: PENDING orders older than the late window become EXPIRED.

    Owned by whoever composes the process (API lifespan or the worker) through
    start() / stop(). Each order is expired in its own session with the
    conditional transition, so an order completed in the meantime just drops
    out; a failing order is logged and the rest of the batch carries on.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        late_window_seconds: int = 120,
        interval_seconds: float = 30.0,
        cache: Optional[OrderCache] = None,
        notifier: Optional[MerchantNotifier] = None,
    ) -> None:
        self.session_factory = session_factory
        self.late_window = timedelta(seconds=late_window_seconds)
        self.interval_seconds = interval_seconds
        self.cache = cache
        self.notifier = notifier
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning(" [Expiry] Scheduler already running")
            return
        self._task = asyncio.create_task(self._run(), name="order-expiry-sweep")
        logger.info(
            f" ⏱️ [Expiry] Scheduler started (every {self.interval_seconds}s, "
            f"window {int(self.late_window.total_seconds())}s)"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(" 🛑 [Expiry] Scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception as e:
                # sweep 掛掉不能讓 loop 停
                logger.exception(f" ❌ [Expiry] Sweep failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    async def sweep(self, now: Optional[datetime] = None) -> int:
        with get_tracer().start_as_current_span("order.expiry_sweep") as span:
            expired = await self._sweep(now or utcnow())
            span.set_attribute("upi.expired_count", expired)
            return expired

    async def _sweep(self, now: datetime) -> int:
        cutoff = now - self.late_window

        async with self.session_factory() as session:
            order_ids = await OrderStore(session).list_expired_pending(cutoff)

        if not order_ids:
            return 0

        logger.info(f" ⏱️ [Expiry] {len(order_ids)} pending order(s) past the window")
        expired = 0
        for order_id in order_ids:
            try:
                if await self.expire_order(order_id, now):
                    expired += 1
            except Exception as e:
                logger.error(f" ❌ [Expiry] Could not expire {order_id}: {e}")
        return expired

    async def expire_order(self, order_id: str, now: Optional[datetime] = None) -> bool:
        """Returns False when the order already left PENDING."""
        callback = None
        async with self.session_factory() as session:
            store = OrderStore(session)
            try:
                order = await store.transition(
                    order_id, OrderStatus.EXPIRED, expected=OrderStatus.PENDING, now=now
                )
            except InvalidTransition as e:
                logger.debug(f" [Expiry] {order_id} already {e.current}, skipped")
                return False

            log_audit(
                session,
                "ORDER_EXPIRED",
                {"order_id": order_id, "merchant_id": order.merchant_id},
                actor_id=order.merchant_id,
            )
            await session.commit()

            if self.notifier is not None:
                merchant = await MerchantStore(session).get(order.merchant_id)
                if merchant is not None and merchant.webhook_url:
                    callback = (
                        merchant.webhook_url,
                        merchant.api_secret,
                        build_callback_payload("ORDER_EXPIRED", order),
                    )

        logger.info(f" ⌛ [Expiry] Order {order_id} EXPIRED")
        if self.cache:
            await self.cache.invalidate(order_id)
        if self.notifier is not None and callback is not None:
            await self.notifier.send(*callback)
        return True
