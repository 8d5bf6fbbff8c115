from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from core.database import get_session
from domains.notification.reconciler import ReconciliationEngine
from domains.order.qr import QrStorage
from domains.order.service import OrderService


def get_order_service(
    request: Request,
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> OrderService:
    settings = request.app.state.settings
    return OrderService(
        session,
        cache=request.app.state.cache,
        qr_storage=QrStorage(settings.UPLOAD_DIR, settings.QR_MAX_BYTES),
    )


def get_reconciliation_engine(
    request: Request,
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> ReconciliationEngine:
    settings = request.app.state.settings
    return ReconciliationEngine(
        session,
        late_window=timedelta(seconds=settings.LATE_WINDOW_SECONDS),
        cache=request.app.state.cache,
    )


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
