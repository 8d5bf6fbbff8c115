from enum import Enum
from typing import Optional

from pydantic import BaseModel

from domains.order.model import OrderStatus


class NotificationOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    LATE_PAYMENT = "LATE_PAYMENT"
    DUPLICATE = "DUPLICATE"
    UNMAPPED = "UNMAPPED"


class NotificationResult(BaseModel):
    status: NotificationOutcome
    message: str
    order_id: Optional[str] = None
    order_status: Optional[OrderStatus] = None
