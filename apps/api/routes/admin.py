from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel.ext.asyncio.session import AsyncSession

from core.database import get_session
from core.security import require_admin
from domains.audit.model import AuditLog
from domains.audit.service import list_audit_logs
from domains.order.model import UnmappedNotification
from domains.order.store import OrderStore

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("/unmapped-notifications", response_model=List[UnmappedNotification])
async def unmapped_notifications(
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> List[UnmappedNotification]:
    return await OrderStore(session).list_unmapped()


@router.get("/audit-logs", response_model=List[AuditLog])
async def audit_logs(
    actor: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> List[AuditLog]:
    return await list_audit_logs(session, actor=actor, action=action, limit=limit)
