import pytest

from core.database import SessionFactory
from core.exceptions import AuthenticationError, DomainNotAllowed
from core.security import (
    authenticate_request,
    compute_signature,
    extract_hostname,
    is_trusted_host,
    signature_matches,
)
from domains.merchant.model import Merchant

BODY = b'{"customer_name":"Meera","amount":150}'


def test_signature_roundtrip() -> None:
    sig = compute_signature("secret", BODY)
    assert signature_matches("secret", BODY, sig)
    assert signature_matches("secret", BODY, sig.upper())
    assert not signature_matches("other", BODY, sig)
    assert not signature_matches("secret", BODY + b" ", sig)


def test_non_hex_signature_is_a_format_error() -> None:
    with pytest.raises(AuthenticationError) as exc_info:
        signature_matches("secret", BODY, "not-hex!")
    assert exc_info.value.message == "Invalid signature format"


@pytest.mark.parametrize(
    "origin,expected",
    [
        ("https://Shop.Example.com/checkout", "shop.example.com"),
        ("http://localhost:3000", "localhost"),
        ("shop.example.com/checkout", "shop.example.com"),
        ("", ""),
        (None, ""),
    ],
)
def test_extract_hostname(origin: str, expected: str) -> None:
    assert extract_hostname(origin) == expected


def test_local_and_suffix_hosts_are_trusted() -> None:
    assert is_trusted_host("localhost")
    assert is_trusted_host("127.0.0.1")
    assert is_trusted_host("preview.vercel.app", [".vercel.app"])
    assert is_trusted_host("vercel.app", ["vercel.app"])
    assert not is_trusted_host("evilvercel.app", ["vercel.app"])
    assert not is_trusted_host("shop.example.com")


@pytest.mark.asyncio
async def test_valid_request_returns_the_merchant(
    session_factory: SessionFactory, merchant: Merchant
) -> None:
    async with session_factory() as session:
        found = await authenticate_request(
            session,
            api_key=merchant.api_key,
            signature=compute_signature(merchant.api_secret, BODY),
            body=BODY,
            origin="https://shop.example.com",
        )
    assert found.id == merchant.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "api_key,signature,message",
    [
        (None, "00", "API key required"),
        ("cp_live_x", None, "Signature required"),
        ("cp_live_unknown", "00", "Invalid API key"),
    ],
)
async def test_missing_or_unknown_credentials(
    session_factory: SessionFactory,
    merchant: Merchant,
    api_key: str,
    signature: str,
    message: str,
) -> None:
    async with session_factory() as session:
        with pytest.raises(AuthenticationError) as exc_info:
            await authenticate_request(session, api_key, signature, BODY)
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == message


@pytest.mark.asyncio
async def test_tampered_body_is_rejected(
    session_factory: SessionFactory, merchant: Merchant
) -> None:
    signature = compute_signature(merchant.api_secret, BODY)
    async with session_factory() as session:
        with pytest.raises(AuthenticationError) as exc_info:
            await authenticate_request(
                session, merchant.api_key, signature, BODY.replace(b"150", b"1")
            )
    assert exc_info.value.message == "Invalid signature"


@pytest.mark.asyncio
async def test_unlisted_domain_is_forbidden(
    session_factory: SessionFactory, merchant: Merchant
) -> None:
    signature = compute_signature(merchant.api_secret, BODY)
    async with session_factory() as session:
        with pytest.raises(DomainNotAllowed) as exc_info:
            await authenticate_request(
                session,
                merchant.api_key,
                signature,
                BODY,
                origin="https://phish.example.net/pay",
            )
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_local_and_trusted_origins_skip_the_allowlist(
    session_factory: SessionFactory, merchant: Merchant
) -> None:
    signature = compute_signature(merchant.api_secret, BODY)
    async with session_factory() as session:
        for origin, suffixes in (
            ("http://localhost:5173", ()),
            ("https://pr-12.preview.example.dev", ("preview.example.dev",)),
        ):
            found = await authenticate_request(
                session,
                merchant.api_key,
                signature,
                BODY,
                origin=origin,
                trusted_suffixes=suffixes,
            )
            assert found.id == merchant.id
