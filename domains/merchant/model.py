import secrets
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from core.clock import utcnow


def generate_api_key() -> str:
    return f"cp_live_{secrets.token_hex(16)}"


def generate_api_secret() -> str:
    return secrets.token_hex(32)


class Merchant(SQLModel, table=True):
    __tablename__ = "merchants"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    business_name: str
    api_key: str = Field(default_factory=generate_api_key, unique=True, index=True)
    # HMAC key，簽章驗證要用原文
    api_secret: str = Field(default_factory=generate_api_secret)
    webhook_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class MerchantDomain(SQLModel, table=True):
    __tablename__ = "merchant_domains"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    merchant_id: str = Field(foreign_key="merchants.id", index=True)
    domain: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
