"""Order number format helpers (EM-XXXXXXXX, 8 uppercase hex digits)"""

import re
from typing import Optional

ORDER_NUMBER_PREFIX = "EM-"

# Persisted-state contract: exactly 8 characters from [0-9A-F]
ORDER_NUMBER_PATTERN = re.compile(r"^EM-[0-9A-F]{8}$")

# Loose form accepted from operator input before normalisation
ORDER_NUMBER_INPUT_PATTERN = re.compile(r"^EM-[A-Z0-9]+$", re.IGNORECASE)


def format_order_number(raw: bytes) -> str:
    return ORDER_NUMBER_PREFIX + raw.hex().upper()


def normalize_order_number(value: Optional[str]) -> str:
    return (value or "").strip().upper()


def is_valid_order_number(value: Optional[str]) -> bool:
    return bool(value) and ORDER_NUMBER_PATTERN.match(value) is not None


def looks_like_order_number(value: Optional[str]) -> bool:
    """True for operator/customer input shaped like an order number (any case)"""
    return bool(value) and ORDER_NUMBER_INPUT_PATTERN.match(value.strip()) is not None
