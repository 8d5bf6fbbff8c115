import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from apps.api.deps import client_ip, get_order_service
from core.security import verify_signature
from domains.merchant.model import Merchant
from domains.order.schemas import OrderCreate, OrderCreated, OrderRead, QrAttached
from domains.order.service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["orders"])


@router.post("/orders", status_code=201, response_model=OrderCreated)
async def create_order(
    payload: OrderCreate,
    request: Request,
    merchant: Merchant = Depends(verify_signature),  # noqa: B008
    service: OrderService = Depends(get_order_service),  # noqa: B008
) -> OrderCreated:
    return await service.create_order(merchant, payload, ip_address=client_ip(request))


@router.post("/qr/upload", response_model=QrAttached)
async def upload_qr(
    order_id: str = Query(...),
    file: Optional[UploadFile] = File(None),  # noqa: B008
    service: OrderService = Depends(get_order_service),  # noqa: B008
) -> QrAttached:
    """
    QR 顯示給付款人了：multipart 的 file 欄位可以帶圖 (png / jpeg)，也可以不帶
    """
    image = await file.read() if file is not None else b""
    order = await service.attach_qr(
        order_id,
        image=image or None,
        content_type=(file.content_type or "") if file is not None else "",
    )
    return QrAttached(order_id=order.order_id, status=order.status, qr_path=order.qr_path)


@router.get("/orders/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),  # noqa: B008
) -> OrderRead:
    """
    讓付款頁輪詢 (Poll) 訂單狀態
    """
    return await service.get_order(order_id)
