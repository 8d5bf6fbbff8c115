import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"

    @property
    def public(self) -> "OrderStatus":
        # 對外一律顯示 FAILED，內部保留 EXPIRED
        return OrderStatus.FAILED if self is OrderStatus.EXPIRED else self


# source -> allowed targets
TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.CREATED: frozenset({OrderStatus.PENDING, OrderStatus.FAILED}),
    OrderStatus.PENDING: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.EXPIRED, OrderStatus.FAILED}
    ),
}

# write-once timestamp column for each entered state
TIMESTAMP_FIELDS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "pending_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.EXPIRED: "expired_at",
    OrderStatus.FAILED: "failed_at",
}


def sources_for(target: OrderStatus) -> frozenset:
    return frozenset(src for src, targets in TRANSITIONS.items() if target in targets)


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    order_id: str = Field(primary_key=True, max_length=10)
    merchant_id: str = Field(index=True, foreign_key="merchants.id")
    customer_name: str
    customer_mobile: str = Field(max_length=10)
    amount: int  # paise
    receiver_upi_id: str
    status: OrderStatus = Field(default=OrderStatus.CREATED, index=True)
    # "metadata" 是 SQLModel 保留字，所以 attribute 換名字
    order_metadata: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column("metadata", JSON, nullable=True)
    )
    qr_path: Optional[str] = None
    # timestamp 一律存 naive UTC
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)
    pending_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    expired_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    failed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    # unique 索引：同一張單最多一筆 Transaction
    order_id: str = Field(foreign_key="orders.order_id", unique=True, index=True)
    merchant_id: str = Field(index=True, foreign_key="merchants.id")
    payer_name: str = "Unknown"
    notification_json: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    is_late_payment: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)


class UnmappedReason(str, Enum):
    NO_ORDER_ID = "NO_ORDER_ID"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"


class UnmappedNotification(SQLModel, table=True):
    __tablename__ = "unmapped_notifications"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    notification_json: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    order_id: Optional[str] = None
    reason: UnmappedReason
    received_at: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)
