import secrets
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union
from urllib.parse import urlencode

ORDER_ID_LENGTH = 10


def generate_order_id(now_ms: Optional[int] = None) -> str:
    """
    10-digit id: last 6 digits of the epoch-millisecond clock + 4 random digits
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    timestamp = str(now_ms)[-6:].rjust(6, "0")
    suffix = str(1000 + secrets.randbelow(9000))
    return timestamp + suffix


def to_minor_units(amount: Union[Decimal, float, int, str]) -> int:
    """150.00 -> 15000 (round half up)"""
    major = Decimal(str(amount))
    return int((major * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(minor: int) -> float:
    """15000 -> 150.0"""
    return round(minor / 100, 2)


def build_upi_intent_url(
    receiver_upi_id: str, payee_name: str, amount_minor: int, order_id: str
) -> str:
    params = {
        "pa": receiver_upi_id,
        "pn": payee_name,
        "am": f"{Decimal(amount_minor) / 100:.2f}",
        "tr": order_id,
        "tn": order_id,
        "cu": "INR",
    }
    return f"upi://pay?{urlencode(params)}"
