from typing import AsyncGenerator, Callable

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from core.config import get_settings

SessionFactory = Callable[[], AsyncSession]


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: AsyncEngine) -> SessionFactory:
    # expire_on_commit=False: commit 後還要讀 order 欄位回傳給 client
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


settings = get_settings()
engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
async_session = build_session_factory(engine)


async def init_db(target: AsyncEngine = engine) -> None:
    # Import models so SQLModel.metadata knows every table
    import domains.models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency: one session per request, from the factory the app was built with
    """
    factory: SessionFactory = request.app.state.session_factory
    async with factory() as session:
        yield session
