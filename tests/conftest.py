# tests/conftest.py
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

import domains.models  # noqa: F401
from apps.api.main import create_app
from core.config import Settings
from core.database import SessionFactory, build_session_factory
from domains.merchant.model import Merchant
from domains.merchant.store import MerchantStore
from domains.order.model import Order, OrderStatus
from domains.order.store import OrderStore
from tests.helpers import ADMIN_KEY, MakeOrder


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    # 每個 test 一個獨立的 sqlite 檔，session 之間才是真的不同連線
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> SessionFactory:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def merchant(session_factory: SessionFactory) -> Merchant:
    async with session_factory() as session:
        store = MerchantStore(session)
        created = await store.create(
            name="Asha Rao",
            email="asha@shop.example.com",
            business_name="Asha Stores",
        )
        await store.add_domain(created.id, "shop.example.com")
        await session.commit()
        return created


@pytest.fixture
def make_order(session_factory: SessionFactory, merchant: Merchant) -> MakeOrder:
    """
    Insert an order straight through the store; pending_at puts it in PENDING
    at that exact moment.
    """
    counter = {"n": 0}

    async def _make(pending_at: Optional[datetime] = None, amount: int = 15000) -> Order:
        counter["n"] += 1
        order_id = f"{9000000000 + counter['n']}"
        async with session_factory() as session:
            store = OrderStore(session)
            order = await store.create(
                Order(
                    order_id=order_id,
                    merchant_id=merchant.id,
                    customer_name="Meera",
                    customer_mobile="9876543210",
                    amount=amount,
                    receiver_upi_id="asha@okaxis",
                )
            )
            if pending_at is not None:
                order = await store.transition(
                    order_id, OrderStatus.PENDING, now=pending_at
                )
            await session.commit()
            return order

    return _make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        REDIS_URL="",
        SCHEDULER_ENABLED=False,
        OTEL_ENABLED=False,
        ADMIN_API_KEY=ADMIN_KEY,
        UPLOAD_DIR=str(tmp_path / "uploads"),
    )


@pytest.fixture
def app(settings: Settings, session_factory: SessionFactory) -> FastAPI:
    return create_app(settings, session_factory=session_factory)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
