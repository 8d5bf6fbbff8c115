import logging
from typing import Any, Dict, List, Optional

from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from domains.audit.model import SYSTEM_ACTOR, AuditLog

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LIMIT = 100


def log_audit(
    session: AsyncSession,
    action: str,
    details: Optional[Dict[str, Any]] = None,
    actor: str = SYSTEM_ACTOR,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Stage an audit entry on the caller's session, so it commits (or rolls back)
    together with the state change it describes.
    """
    entry = AuditLog(
        actor=actor,
        actor_id=actor_id,
        action=action,
        details_json=details,
        ip_address=ip_address,
    )
    session.add(entry)
    logger.debug(f"📝 [Audit] {action} by {actor} {details or {}}")
    return entry


async def list_audit_logs(
    session: AsyncSession,
    actor: Optional[str] = None,
    action: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[AuditLog]:
    statement = select(AuditLog)
    if actor:
        statement = statement.where(col(AuditLog.actor).contains(actor))
    if action:
        statement = statement.where(AuditLog.action == action)
    statement = statement.order_by(col(AuditLog.created_at).desc()).limit(
        limit or DEFAULT_AUDIT_LIMIT
    )
    result = await session.exec(statement)
    return list(result.all())
