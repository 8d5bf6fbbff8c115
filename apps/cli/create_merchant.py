import argparse
import asyncio
import logging
from typing import List, Optional

from core.config import get_settings
from core.database import async_session, init_db
from core.log_config import setup_logging
from domains.audit.service import log_audit
from domains.merchant.store import MerchantStore

logger = logging.getLogger(__name__)


async def create_merchant(
    name: str,
    email: str,
    business_name: str,
    domains: List[str],
    webhook_url: Optional[str] = None,
) -> dict:
    async with async_session() as session:
        store = MerchantStore(session)
        merchant = await store.create(
            name=name, email=email, business_name=business_name, webhook_url=webhook_url
        )
        merchant_id = merchant.id
        for domain in domains:
            await store.add_domain(merchant_id, domain)
        log_audit(
            session,
            "CREATE_MERCHANT",
            {"merchant_id": merchant_id, "email": merchant.email, "domains": domains},
        )
        credentials = {
            "merchant_id": merchant_id,
            "api_key": merchant.api_key,
            "api_secret": merchant.api_secret,
        }
        await session.commit()
    return credentials


def main() -> None:
    setup_logging(get_settings().LOG_LEVEL)

    parser = argparse.ArgumentParser(description="Provision a merchant and its API keys.")
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--business-name", required=True)
    parser.add_argument(
        "--domain",
        action="append",
        default=[],
        help="allowed origin domain (repeatable)",
    )
    parser.add_argument("--webhook-url", default=None)
    parser.add_argument(
        "--init-db", action="store_true", help="create tables before inserting"
    )
    args = parser.parse_args()

    async def _run() -> dict:
        if args.init_db:
            await init_db()
        return await create_merchant(
            args.name, args.email, args.business_name, args.domain, args.webhook_url
        )

    credentials = asyncio.run(_run())
    logger.info(f" 🎉 Merchant {credentials['merchant_id']} created.")
    for key, value in credentials.items():
        print(f"{key}: {value}")


if __name__ == "__main__":
    main()
