import hashlib
import hmac
import logging
import re
from typing import Any, Dict, Iterable, Optional
from urllib.parse import urlparse

from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from core.database import get_session
from core.exceptions import AuthenticationError, DomainNotAllowed
from domains.merchant.model import Merchant
from domains.merchant.store import MerchantStore

logger = logging.getLogger(__name__)

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def compute_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest of the raw body, keyed by the merchant secret"""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def signature_matches(secret: str, body: bytes, provided: str) -> bool:
    try:
        provided_bytes = bytes.fromhex(provided.strip())
    except ValueError as e:
        raise AuthenticationError("Invalid signature format") from e

    expected = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    # constant-time，不要用 ==
    return hmac.compare_digest(expected, provided_bytes)


def extract_hostname(origin: Optional[str]) -> str:
    if not origin:
        return ""
    hostname = urlparse(origin).hostname
    if hostname:
        return hostname.lower()
    # 沒有 scheme 的情況，例如 "shop.example.com/checkout"
    bare = re.sub(r"^https?://", "", origin).split("/")[0]
    return bare.split(":")[0].lower()


def is_trusted_host(hostname: str, trusted_suffixes: Iterable[str] = ()) -> bool:
    if hostname in LOCAL_HOSTS:
        return True
    for suffix in trusted_suffixes:
        suffix = suffix.lower().lstrip(".")
        if hostname == suffix or hostname.endswith(f".{suffix}"):
            return True
    return False


async def authenticate_request(
    session: AsyncSession,
    api_key: Optional[str],
    signature: Optional[str],
    body: bytes,
    origin: Optional[str] = None,
    trusted_suffixes: Iterable[str] = (),
) -> Merchant:
    """
    API key -> merchant, HMAC over the untouched body, then the domain allowlist.
    Raises before anything is written.
    """
    if not api_key:
        logger.warning(" X-API-Key header is missing")
        raise AuthenticationError("API key required")
    if not signature:
        logger.warning(" X-Signature header is missing")
        raise AuthenticationError("Signature required")

    store = MerchantStore(session)
    merchant = await store.get_by_api_key(api_key)
    if merchant is None:
        logger.warning(" Unknown API key")
        raise AuthenticationError("Invalid API key")

    if not signature_matches(merchant.api_secret, body, signature):
        logger.error(f" X-Signature is invalid for merchant {merchant.id}")
        raise AuthenticationError("Invalid signature")

    hostname = extract_hostname(origin)
    if hostname and not is_trusted_host(hostname, trusted_suffixes):
        if not await store.is_domain_allowed(merchant.id, hostname):
            logger.warning(f" Domain {hostname} not allowed for merchant {merchant.id}")
            raise DomainNotAllowed()

    return merchant


async def verify_signature(
    request: Request,
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> Merchant:
    """
    Verify the signed merchant request (X-API-Key + X-Signature HMAC-SHA256)
    """

    # body 讀過之後要重置 receive，不然後面拿不到
    body_bytes = await request.body()

    async def receive() -> Dict[str, Any]:
        return {"type": "http.request", "body": body_bytes}

    request._receive = receive

    origin = request.headers.get("Origin") or request.headers.get("Referer")
    return await authenticate_request(
        session,
        api_key=request.headers.get("X-API-Key"),
        signature=request.headers.get("X-Signature"),
        body=body_bytes,
        origin=origin,
        trusted_suffixes=request.app.state.settings.TRUSTED_HOST_SUFFIXES,
    )


async def require_admin(request: Request) -> None:
    expected = request.app.state.settings.ADMIN_API_KEY
    provided = request.headers.get("X-Admin-Key", "")
    if not expected or not hmac.compare_digest(expected.encode(), provided.encode()):
        logger.warning(" Admin key missing or invalid")
        raise AuthenticationError("Admin access required")
