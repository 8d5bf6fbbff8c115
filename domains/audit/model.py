import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow

SYSTEM_ACTOR = "SYSTEM"


class AuditLog(SQLModel, table=True):
    """Append-only; never updated or deleted."""

    __tablename__ = "audit_logs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    actor: str = Field(index=True)  # email or "SYSTEM"
    actor_id: Optional[str] = Field(default=None, index=True)
    action: str = Field(index=True)
    details_json: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    ip_address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)
