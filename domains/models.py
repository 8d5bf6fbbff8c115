# 集中 import 所有 table，讓 SQLModel.metadata (create_all / Alembic) 看得到
from domains.audit.model import AuditLog
from domains.merchant.model import Merchant, MerchantDomain
from domains.order.model import Order, Transaction, UnmappedNotification

__all__ = [
    "AuditLog",
    "Merchant",
    "MerchantDomain",
    "Order",
    "Transaction",
    "UnmappedNotification",
]
