from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from apps.api.deps import get_order_service
from core.security import verify_signature
from domains.merchant.model import Merchant
from domains.order.schemas import OrderRead, TransactionRead
from domains.order.service import OrderService

router = APIRouter(prefix="/api/v1/merchant", tags=["merchant"])


@router.get("/orders", response_model=List[OrderRead])
async def list_orders(
    status: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    merchant: Merchant = Depends(verify_signature),  # noqa: B008
    service: OrderService = Depends(get_order_service),  # noqa: B008
) -> List[OrderRead]:
    return await service.list_orders(merchant, status, start_date, end_date)


@router.get("/transactions", response_model=List[TransactionRead])
async def list_transactions(
    merchant: Merchant = Depends(verify_signature),  # noqa: B008
    service: OrderService = Depends(get_order_service),  # noqa: B008
) -> List[TransactionRead]:
    transactions = await service.list_transactions(merchant)
    return [TransactionRead.model_validate(t, from_attributes=True) for t in transactions]
