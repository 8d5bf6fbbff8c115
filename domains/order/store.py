import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from core.clock import utcnow
from core.exceptions import (
    InvalidTransition,
    NotFoundError,
    OrderIdConflict,
    StorageError,
    TransactionExists,
)
from domains.order.model import (
    TIMESTAMP_FIELDS,
    Order,
    OrderStatus,
    Transaction,
    UnmappedNotification,
    UnmappedReason,
    sources_for,
)

logger = logging.getLogger(__name__)


class OrderStore:
    """
    Persistence for orders and the records hanging off them.

    Methods stage work on the caller's session and flush; committing is the
    caller's job, so a status change and its audit entry land together.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    async def create(self, order: Order) -> Order:
        order_id = order.order_id
        self.session.add(order)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            if await self.get(order_id) is not None:
                raise OrderIdConflict(order_id) from e
            raise StorageError() from e
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        # populate_existing：別拿 identity map 裡的舊狀態
        result = await self.session.exec(
            select(Order)
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.first()

    async def transition(
        self,
        order_id: str,
        target: OrderStatus,
        expected: Optional[OrderStatus] = None,
        now: Optional[datetime] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """
        Move an order to `target` with one conditional UPDATE.

        The row only changes when its status is a legal source for `target`
        (narrowed to `expected` when given) and the target's timestamp is
        still NULL. Zero affected rows means the edge does not exist or
        someone else got there first; the order is re-read to tell which.
        """
        allowed = sources_for(target)
        if expected is not None:
            allowed = allowed & {expected}

        ts_field = TIMESTAMP_FIELDS[target]
        ts_column = getattr(Order, ts_field)
        changes: Dict[str, Any] = {"status": target, ts_field: now or utcnow()}
        if values:
            changes.update(values)

        statement = (
            update(Order)
            .where(
                col(Order.order_id) == order_id,
                col(Order.status).in_(list(allowed)),
                col(ts_column).is_(None),
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.exec(statement)  # type: ignore[call-overload]

        if result.rowcount != 1:
            current = await self.get(order_id)
            if current is None:
                raise NotFoundError(f"Order {order_id} not found")
            raise InvalidTransition(order_id, current.status.value, target.value)

        order = await self.get(order_id)
        if order is None:
            raise StorageError()
        logger.info(f"🔁 [Store] Order {order_id} -> {target.value}")
        return order

    async def list_expired_pending(self, cutoff: datetime) -> List[str]:
        # 嚴格小於：剛好滿 window 的單還算準時
        result = await self.session.exec(
            select(Order.order_id).where(
                Order.status == OrderStatus.PENDING,
                col(Order.pending_at).is_not(None),
                col(Order.pending_at) < cutoff,
            )
        )
        return list(result.all())

    async def list_by_merchant(
        self,
        merchant_id: str,
        statuses: Optional[Iterable[OrderStatus]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Order]:
        statement = select(Order).where(Order.merchant_id == merchant_id)
        if statuses:
            statement = statement.where(col(Order.status).in_(list(statuses)))
        if start:
            statement = statement.where(col(Order.created_at) >= start)
        if end:
            statement = statement.where(col(Order.created_at) <= end)
        result = await self.session.exec(
            statement.order_by(col(Order.created_at).desc())
        )
        return list(result.all())

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    async def get_transaction(self, order_id: str) -> Optional[Transaction]:
        result = await self.session.exec(
            select(Transaction).where(Transaction.order_id == order_id)
        )
        return result.first()

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        order_id = transaction.order_id
        self.session.add(transaction)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # unique(order_id) 擋下同時到達的重複通知
            await self.session.rollback()
            raise TransactionExists(order_id) from e
        return transaction

    async def list_transactions_by_merchant(self, merchant_id: str) -> List[Transaction]:
        result = await self.session.exec(
            select(Transaction)
            .where(Transaction.merchant_id == merchant_id)
            .order_by(col(Transaction.created_at).desc())
        )
        return list(result.all())

    # ------------------------------------------------------------------
    # Unmapped notifications
    # ------------------------------------------------------------------
    async def add_unmapped(
        self,
        payload: Dict[str, Any],
        reason: UnmappedReason,
        order_id: Optional[str] = None,
    ) -> UnmappedNotification:
        record = UnmappedNotification(
            notification_json=payload, reason=reason, order_id=order_id
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_unmapped(self) -> List[UnmappedNotification]:
        result = await self.session.exec(
            select(UnmappedNotification).order_by(
                col(UnmappedNotification.received_at).desc()
            )
        )
        return list(result.all())
