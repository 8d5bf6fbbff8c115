from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from core.database import SessionFactory
from core.exceptions import InvalidTransition, NotFoundError, StorageError, ValidationError
from domains.audit.service import list_audit_logs
from domains.merchant.model import Merchant
from domains.order.model import OrderStatus, Transaction
from domains.order.qr import QrStorage
from domains.order.schemas import OrderCreate
from domains.order.service import OrderService
from domains.order.store import OrderStore
from tests.helpers import MakeOrder

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
T0 = datetime(2026, 3, 1, 10, 0, 0)


def order_request(**overrides: object) -> OrderCreate:
    data = {
        "customer_name": "  Meera  ",
        "customer_mobile": "9876543210",
        "amount": Decimal("150.00"),
        "receiver_upi_id": "asha@okaxis",
        "metadata": {"cart": "A-17"},
    }
    data.update(overrides)
    return OrderCreate.model_validate(data)


@pytest.mark.asyncio
async def test_create_order_stores_minor_units_and_audits(
    session_factory: SessionFactory, merchant: Merchant
) -> None:
    async with session_factory() as session:
        created = await OrderService(session).create_order(
            merchant, order_request(), ip_address="10.0.0.9"
        )

    assert len(created.order_id) == 10 and created.order_id.isdigit()
    assert created.status == OrderStatus.CREATED
    assert created.amount == 150.0
    assert created.customer_name == "Meera"
    assert "am=150.00" in created.upi_intent_url
    assert f"tr={created.order_id}" in created.upi_intent_url

    async with session_factory() as session:
        stored = await OrderStore(session).get(created.order_id)
        audits = await list_audit_logs(session, action="CREATE_ORDER")

    assert stored is not None
    assert stored.amount == 15000
    assert stored.order_metadata == {"cart": "A-17"}
    assert audits[0].actor == merchant.email
    assert audits[0].ip_address == "10.0.0.9"


@pytest.mark.asyncio
async def test_sub_paisa_amount_is_rejected(
    session_factory: SessionFactory, merchant: Merchant
) -> None:
    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await OrderService(session).create_order(
                merchant, order_request(amount=Decimal("0.004"))
            )


@pytest.mark.asyncio
async def test_id_collisions_retry_then_give_up(
    session_factory: SessionFactory,
    merchant: Merchant,
    make_order: MakeOrder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    taken = await make_order()
    ids = iter([taken.order_id, "1111122222"])
    monkeypatch.setattr("domains.order.service.generate_order_id", lambda: next(ids))

    async with session_factory() as session:
        created = await OrderService(session).create_order(merchant, order_request())
    assert created.order_id == "1111122222"

    monkeypatch.setattr("domains.order.service.generate_order_id", lambda: taken.order_id)
    async with session_factory() as session:
        with pytest.raises(StorageError):
            await OrderService(session).create_order(merchant, order_request())


@pytest.mark.asyncio
async def test_attach_qr_moves_order_to_pending(
    session_factory: SessionFactory, make_order: MakeOrder, tmp_path: Path
) -> None:
    order = await make_order()
    cache = AsyncMock()
    storage = QrStorage(str(tmp_path))

    async with session_factory() as session:
        pending = await OrderService(session, cache=cache, qr_storage=storage).attach_qr(
            order.order_id, image=PNG, content_type="image/png"
        )

    assert pending.status == OrderStatus.PENDING
    assert pending.pending_at is not None
    assert pending.qr_path == f"/uploads/qr/{order.order_id}.png"
    assert (tmp_path / "qr" / f"{order.order_id}.png").read_bytes() == PNG
    cache.invalidate.assert_awaited_once_with(order.order_id)


@pytest.mark.asyncio
async def test_attach_qr_without_image(
    session_factory: SessionFactory, make_order: MakeOrder
) -> None:
    order = await make_order()

    async with session_factory() as session:
        pending = await OrderService(session).attach_qr(order.order_id)

    assert pending.status == OrderStatus.PENDING
    assert pending.qr_path is None


@pytest.mark.asyncio
async def test_attach_qr_twice_is_a_conflict(
    session_factory: SessionFactory, make_order: MakeOrder
) -> None:
    order = await make_order(pending_at=T0)

    async with session_factory() as session:
        with pytest.raises(InvalidTransition):
            await OrderService(session).attach_qr(order.order_id)

    async with session_factory() as session:
        stored = await OrderStore(session).get(order.order_id)
    assert stored is not None and stored.pending_at == T0


@pytest.mark.asyncio
async def test_attach_qr_rejects_bad_images_before_touching_the_order(
    session_factory: SessionFactory, make_order: MakeOrder, tmp_path: Path
) -> None:
    order = await make_order()
    storage = QrStorage(str(tmp_path), max_bytes=16)

    async with session_factory() as session:
        service = OrderService(session, qr_storage=storage)
        with pytest.raises(ValidationError):
            await service.attach_qr(order.order_id, image=b"GIF89a", content_type="image/gif")
        with pytest.raises(ValidationError):
            await service.attach_qr(order.order_id, image=PNG, content_type="image/png")

    async with session_factory() as session:
        stored = await OrderStore(session).get(order.order_id)
    assert stored is not None and stored.status == OrderStatus.CREATED


@pytest.mark.asyncio
async def test_attach_qr_unknown_and_malformed_ids(session_factory: SessionFactory) -> None:
    async with session_factory() as session:
        service = OrderService(session)
        with pytest.raises(NotFoundError):
            await service.attach_qr("0000000000")
        with pytest.raises(ValidationError):
            await service.attach_qr("12345")


@pytest.mark.asyncio
async def test_get_order_reports_public_status(
    session_factory: SessionFactory, make_order: MakeOrder
) -> None:
    order = await make_order(pending_at=T0)
    async with session_factory() as session:
        await OrderStore(session).transition(order.order_id, OrderStatus.EXPIRED)
        await session.commit()

    async with session_factory() as session:
        read = await OrderService(session).get_order(order.order_id)

    assert read.status == OrderStatus.FAILED
    assert read.internal_status == OrderStatus.EXPIRED
    assert read.amount == 150.0
    assert read.transaction is None


@pytest.mark.asyncio
async def test_get_order_skips_cache_while_order_can_change(
    session_factory: SessionFactory, make_order: MakeOrder
) -> None:
    order = await make_order(pending_at=T0)
    cache = AsyncMock()
    cache.get.return_value = None

    async with session_factory() as session:
        read = await OrderService(session, cache=cache).get_order(order.order_id)

    assert read.status == OrderStatus.PENDING
    cache.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_order_caches_completed_orders(
    session_factory: SessionFactory, make_order: MakeOrder
) -> None:
    order = await make_order(pending_at=T0)
    async with session_factory() as session:
        store = OrderStore(session)
        await store.add_transaction(
            Transaction(
                order_id=order.order_id,
                merchant_id=order.merchant_id,
                payer_name="Ravi",
                notification_json={},
            )
        )
        await store.transition(
            order.order_id, OrderStatus.COMPLETED, now=T0 + timedelta(seconds=30)
        )
        await session.commit()

    cache = AsyncMock()
    cache.get.return_value = None
    async with session_factory() as session:
        first = await OrderService(session, cache=cache).get_order(order.order_id)
    cache.set.assert_awaited_once()
    cached_projection = cache.set.await_args.args[1]

    cache.get.return_value = cached_projection
    async with session_factory() as session:
        second = await OrderService(session, cache=cache).get_order(order.order_id)

    assert second == first
    assert second.transaction is not None


@pytest.mark.asyncio
async def test_failed_filter_includes_expired_orders(
    session_factory: SessionFactory, merchant: Merchant, make_order: MakeOrder
) -> None:
    expired = await make_order(pending_at=T0)
    pending = await make_order(pending_at=T0)
    async with session_factory() as session:
        await OrderStore(session).transition(expired.order_id, OrderStatus.EXPIRED)
        await session.commit()

    async with session_factory() as session:
        service = OrderService(session)
        failed = await service.list_orders(merchant, status="failed")
        only_pending = await service.list_orders(merchant, status="PENDING")
        later = await service.list_orders(merchant, start=datetime.now() + timedelta(days=1))

    assert [o.order_id for o in failed] == [expired.order_id]
    assert failed[0].status == OrderStatus.FAILED
    assert [o.order_id for o in only_pending] == [pending.order_id]
    assert later == []

    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await OrderService(session).list_orders(merchant, status="PAID")
