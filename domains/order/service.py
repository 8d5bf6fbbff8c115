import logging
import re
from datetime import datetime
from typing import List, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from core.cache import OrderCache
from core.clock import to_naive_utc
from core.exceptions import (
    InvalidTransition,
    NotFoundError,
    OrderIdConflict,
    StorageError,
    ValidationError,
)
from domains.audit.service import log_audit
from domains.merchant.model import Merchant
from domains.order.model import Order, OrderStatus, Transaction
from domains.order.qr import QrStorage
from domains.order.schemas import OrderCreate, OrderCreated, OrderRead
from domains.order.store import OrderStore
from domains.order.upi import (
    build_upi_intent_url,
    generate_order_id,
    to_major_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)

ORDER_ID_PATTERN = re.compile(r"^[0-9]{10}$")
MAX_ORDER_ID_ATTEMPTS = 3


def ensure_order_id_format(order_id: str) -> None:
    if not ORDER_ID_PATTERN.match(order_id):
        raise ValidationError.for_field("order_id", "order_id must be 10 digits")


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[OrderCache] = None,
        qr_storage: Optional[QrStorage] = None,
    ) -> None:
        self.session = session
        self.store = OrderStore(session)
        self.cache = cache
        self.qr_storage = qr_storage

    async def create_order(
        self,
        merchant: Merchant,
        data: OrderCreate,
        ip_address: Optional[str] = None,
    ) -> OrderCreated:
        amount_minor = to_minor_units(data.amount)
        if amount_minor <= 0:
            raise ValidationError.for_field("amount", "Amount must be at least 0.01")

        # a rollback on id collision expires ORM objects, so read merchant fields once
        merchant_id, merchant_email, payee_name = (
            merchant.id,
            merchant.email,
            merchant.business_name,
        )

        order: Optional[Order] = None
        for attempt in range(1, MAX_ORDER_ID_ATTEMPTS + 1):
            candidate = Order(
                order_id=generate_order_id(),
                merchant_id=merchant_id,
                customer_name=data.customer_name,
                customer_mobile=data.customer_mobile,
                amount=amount_minor,
                receiver_upi_id=data.receiver_upi_id,
                status=OrderStatus.CREATED,
                order_metadata=data.metadata,
            )
            try:
                order = await self.store.create(candidate)
                break
            except OrderIdConflict as e:
                logger.warning(
                    f"⚠️ [Order] Id collision on {e.order_id} "
                    f"(attempt {attempt}/{MAX_ORDER_ID_ATTEMPTS})"
                )
        if order is None:
            raise StorageError("Could not allocate a unique order id")

        log_audit(
            self.session,
            "CREATE_ORDER",
            {
                "order_id": order.order_id,
                "amount": to_major_units(amount_minor),
                "customer_mobile": order.customer_mobile,
            },
            actor=merchant_email,
            actor_id=merchant_id,
            ip_address=ip_address,
        )
        await self.session.commit()
        logger.info(f"🧾 [Order] Created {order.order_id} for merchant {merchant_id}")

        return OrderCreated(
            order_id=order.order_id,
            status=order.status,
            amount=to_major_units(order.amount),
            upi_intent_url=build_upi_intent_url(
                order.receiver_upi_id,
                payee_name,
                order.amount,
                order.order_id,
            ),
            customer_name=order.customer_name,
            customer_mobile=order.customer_mobile,
            receiver_upi_id=order.receiver_upi_id,
            created_at=order.created_at,
        )

    async def attach_qr(
        self,
        order_id: str,
        image: Optional[bytes] = None,
        content_type: str = "",
    ) -> Order:
        """
        QR is on screen: CREATED -> PENDING, the payment window starts now.
        """
        ensure_order_id_format(order_id)
        extension = None
        if image:
            if self.qr_storage is None:
                raise ValidationError.for_field("file", "QR uploads are not enabled")
            extension = self.qr_storage.validate(content_type, image)

        order = await self.store.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status != OrderStatus.CREATED:
            raise InvalidTransition(order_id, order.status.value, OrderStatus.PENDING.value)

        values = None
        if image and extension and self.qr_storage is not None:
            values = {"qr_path": await self.qr_storage.save(order_id, image, extension)}

        order = await self.store.transition(
            order_id, OrderStatus.PENDING, expected=OrderStatus.CREATED, values=values
        )
        log_audit(
            self.session,
            "QR_UPLOAD",
            {"order_id": order_id, "qr_path": order.qr_path},
            actor_id=order.merchant_id,
        )
        await self.session.commit()
        if self.cache:
            await self.cache.invalidate(order_id)
        return order

    async def get_order(self, order_id: str) -> OrderRead:
        ensure_order_id_format(order_id)
        if self.cache:
            cached = await self.cache.get(order_id)
            if cached:
                return OrderRead.model_validate(cached)

        order = await self.store.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        transaction = await self.store.get_transaction(order_id)
        projection = OrderRead.from_order(order, transaction)

        # 只有 COMPLETED 不會再變，其他狀態每次都讀 DB
        if self.cache and order.status == OrderStatus.COMPLETED:
            await self.cache.set(order_id, projection.model_dump(mode="json"))
        return projection

    async def list_orders(
        self,
        merchant: Merchant,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[OrderRead]:
        statuses = None
        if status:
            try:
                wanted = OrderStatus(status.upper())
            except ValueError as e:
                raise ValidationError.for_field("status", f"Unknown status {status}") from e
            # 對外的 FAILED 也包含內部 EXPIRED
            if wanted is OrderStatus.FAILED:
                statuses = [OrderStatus.FAILED, OrderStatus.EXPIRED]
            else:
                statuses = [wanted]

        orders = await self.store.list_by_merchant(
            merchant.id, statuses, to_naive_utc(start), to_naive_utc(end)
        )
        return [OrderRead.from_order(order) for order in orders]

    async def list_transactions(self, merchant: Merchant) -> List[Transaction]:
        return await self.store.list_transactions_by_merchant(merchant.id)
