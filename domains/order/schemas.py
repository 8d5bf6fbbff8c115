from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from domains.order.model import Order, OrderStatus, Transaction
from domains.order.upi import to_major_units


class OrderCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    customer_name: str = Field(min_length=1)
    customer_mobile: str = Field(pattern=r"^[0-9]{10}$")
    amount: Decimal = Field(gt=0)  # major units, e.g. 150.00
    receiver_upi_id: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class OrderCreated(BaseModel):
    order_id: str
    status: OrderStatus
    amount: float
    upi_intent_url: str
    customer_name: str
    customer_mobile: str
    receiver_upi_id: str
    created_at: datetime


class TransactionSummary(BaseModel):
    payer_name: str
    is_late_payment: bool
    created_at: datetime


class OrderRead(BaseModel):
    order_id: str
    merchant_id: str
    customer_name: str
    customer_mobile: str
    amount: float
    receiver_upi_id: str
    status: OrderStatus  # public: EXPIRED shows as FAILED
    internal_status: OrderStatus
    metadata: Optional[Dict[str, Any]] = None
    qr_path: Optional[str] = None
    created_at: datetime
    pending_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    transaction: Optional[TransactionSummary] = None

    @classmethod
    def from_order(
        cls, order: Order, transaction: Optional[Transaction] = None
    ) -> "OrderRead":
        return cls(
            order_id=order.order_id,
            merchant_id=order.merchant_id,
            customer_name=order.customer_name,
            customer_mobile=order.customer_mobile,
            amount=to_major_units(order.amount),
            receiver_upi_id=order.receiver_upi_id,
            status=order.status.public,
            internal_status=order.status,
            metadata=order.order_metadata,
            qr_path=order.qr_path,
            created_at=order.created_at,
            pending_at=order.pending_at,
            completed_at=order.completed_at,
            expired_at=order.expired_at,
            failed_at=order.failed_at,
            transaction=(
                TransactionSummary(
                    payer_name=transaction.payer_name,
                    is_late_payment=transaction.is_late_payment,
                    created_at=transaction.created_at,
                )
                if transaction
                else None
            ),
        )


class QrAttached(BaseModel):
    message: str = "QR uploaded and order is now PENDING"
    order_id: str
    status: OrderStatus
    qr_path: Optional[str] = None


class TransactionRead(BaseModel):
    id: str
    order_id: str
    merchant_id: str
    payer_name: str
    is_late_payment: bool
    notification_json: Dict[str, Any]
    created_at: datetime
