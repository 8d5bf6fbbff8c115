import asyncio
import logging
import time
from collections import Counter
from datetime import timedelta

import httpx
import pytest

from core.clock import utcnow
from core.database import SessionFactory
from domains.expiry.scheduler import ExpiryScheduler
from domains.order.model import OrderStatus
from domains.order.store import OrderStore
from tests.helpers import MakeOrder, payment_notification

CONCURRENCY_LEVEL = 10  # 同時發射 10 發同一筆通知

logging.getLogger("httpx").setLevel(logging.WARNING)


async def send_notification(client: httpx.AsyncClient, order_id: str) -> str:
    resp = await client.post("/api/v1/notifications", json=payment_notification(order_id))
    assert resp.status_code == 200
    return resp.json()["status"]


@pytest.mark.asyncio
async def test_duplicate_notifications_record_one_payment(
    client: httpx.AsyncClient, make_order: MakeOrder, session_factory: SessionFactory
) -> None:
    order = await make_order(pending_at=utcnow())

    start_total = time.time()
    # 注意：這裡沒有 await，先把 coroutine 都放進 list 再一起 gather
    tasks = [send_notification(client, order.order_id) for _ in range(CONCURRENCY_LEVEL)]
    results = await asyncio.gather(*tasks)
    total_time = time.time() - start_total

    outcomes = Counter(results)
    print(f"\n📊 {CONCURRENCY_LEVEL} notifications in {total_time:.2f}s: {dict(outcomes)}")
    assert outcomes["COMPLETED"] == 1
    assert outcomes["DUPLICATE"] == CONCURRENCY_LEVEL - 1

    async with session_factory() as session:
        transactions = await OrderStore(session).list_transactions_by_merchant(
            order.merchant_id
        )
    assert len(transactions) == 1


@pytest.mark.asyncio
async def test_payment_racing_expiry_ends_in_exactly_one_terminal_state(
    client: httpx.AsyncClient, make_order: MakeOrder, session_factory: SessionFactory
) -> None:
    # 還在 window 內 (100s)，但 sweep 的時鐘已經過了
    order = await make_order(pending_at=utcnow() - timedelta(seconds=100))
    scheduler = ExpiryScheduler(session_factory)

    outcome, swept = await asyncio.gather(
        send_notification(client, order.order_id),
        scheduler.sweep(now=utcnow() + timedelta(seconds=30)),
    )

    async with session_factory() as session:
        store = OrderStore(session)
        stored = await store.get(order.order_id)
        transaction = await store.get_transaction(order.order_id)

    assert stored is not None and transaction is not None
    # completed_at / expired_at 最多一個
    assert (stored.completed_at is None) != (stored.expired_at is None)

    if stored.status == OrderStatus.COMPLETED:
        assert outcome == "COMPLETED"
        assert swept == 0
        assert transaction.is_late_payment is False
    else:
        assert stored.status == OrderStatus.EXPIRED
        assert outcome == "LATE_PAYMENT"
        assert swept == 1
