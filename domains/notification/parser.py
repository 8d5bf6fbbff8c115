"""
Pull the order id and payer name out of a forwarded payment notification.

The notification text belongs to whichever UPI app raised it, so there is no
schema to rely on: everything here is pattern matching, and anything that does
not match comes back as None instead of raising.
"""
import re
from typing import Any, Mapping, NamedTuple, Optional, Sequence

# listener app 轉發 Android extras 原本的 key；也接受短 key
TITLE_KEYS = ("android.title", "title")
TEXT_KEYS = ("android.text", "text")
BIG_TEXT_KEYS = ("android.bigText", "bigText", "big_text")

PAYER_PATTERN = re.compile(r"^(.+?)\s+paid you", re.IGNORECASE)
ORDER_ID_PATTERN = re.compile(r"(?<![0-9])([0-9]{10})(?![0-9])")


class ParsedNotification(NamedTuple):
    order_id: Optional[str]
    payer_name: Optional[str]


def _first_text(payload: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_payer_name(title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    match = PAYER_PATTERN.match(title)
    if not match:
        return None
    return match.group(1).strip() or None


def extract_order_id(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    match = ORDER_ID_PATTERN.search(text)
    return match.group(1) if match else None


def parse_notification(payload: Any) -> ParsedNotification:
    if not isinstance(payload, Mapping):
        return ParsedNotification(order_id=None, payer_name=None)

    payer_name = extract_payer_name(_first_text(payload, TITLE_KEYS))
    # bigText 優先，沒有才看 text
    source = _first_text(payload, BIG_TEXT_KEYS) or _first_text(payload, TEXT_KEYS)
    return ParsedNotification(order_id=extract_order_id(source), payer_name=payer_name)
