import re
from typing import Optional

import httpx
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from core.exceptions import ValidationError
from domains.merchant.model import Merchant, MerchantDomain

DOMAIN_PATTERN = re.compile(r"^([a-z0-9]+(-[a-z0-9]+)*\.)+[a-z]{2,}$", re.IGNORECASE)


def ensure_webhook_url(url: str) -> None:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ValidationError.for_field("webhook_url", "Invalid webhook URL") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValidationError.for_field("webhook_url", "Invalid webhook URL")


class MerchantStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, merchant_id: str) -> Optional[Merchant]:
        return await self.session.get(Merchant, merchant_id)

    async def get_by_api_key(self, api_key: str) -> Optional[Merchant]:
        result = await self.session.exec(
            select(Merchant).where(Merchant.api_key == api_key)
        )
        return result.first()

    async def create(
        self,
        name: str,
        email: str,
        business_name: str,
        webhook_url: Optional[str] = None,
    ) -> Merchant:
        if webhook_url:
            ensure_webhook_url(webhook_url)
        merchant = Merchant(
            name=name,
            email=email.lower(),
            business_name=business_name,
            webhook_url=webhook_url,
        )
        self.session.add(merchant)
        await self.session.flush()
        return merchant

    async def add_domain(self, merchant_id: str, domain: str) -> MerchantDomain:
        if not DOMAIN_PATTERN.match(domain):
            raise ValidationError.for_field("domain", "Invalid domain format")
        entry = MerchantDomain(merchant_id=merchant_id, domain=domain.lower())
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def is_domain_allowed(self, merchant_id: str, domain: str) -> bool:
        result = await self.session.exec(
            select(MerchantDomain).where(
                MerchantDomain.merchant_id == merchant_id,
                MerchantDomain.domain == domain.lower(),
            )
        )
        return result.first() is not None
