import math
import re
from typing import Optional, Tuple

from app.core.exceptions.checkout import InvalidAmount, InvalidDocument, InvalidOrderId

ORDER_ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

# Tolerância entre o total do pedido e o valor pedido; FLOAT_SLACK só absorve
# o erro de representação de float (59.90 - 59.89 = 0.01000000000000156)
AMOUNT_EPSILON = 0.01
FLOAT_SLACK = 1e-9
DESCRIPTION_MAX_LENGTH = 200
_MARKUP_CHARS = re.compile(r"[<>\"'&]")


def only_digits(value: Optional[str]) -> str:
    return re.sub(r"\D+", "", value or "")


def is_valid_order_id(value) -> bool:
    return isinstance(value, str) and bool(ORDER_ID_PATTERN.match(value))


def ensure_order_id(value) -> str:
    if not is_valid_order_id(value):
        raise InvalidOrderId()
    return value


def ensure_amount(value, max_amount: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidAmount()
    amount = float(value)
    if not math.isfinite(amount) or amount <= 0 or amount > max_amount:
        raise InvalidAmount()
    return amount


def amounts_match(expected: float, requested: float) -> bool:
    return abs(expected - requested) <= AMOUNT_EPSILON + FLOAT_SLACK


def normalize_document(value: Optional[str]) -> str:
    digits = only_digits(value)
    if len(digits) != 11:
        raise InvalidDocument()
    return digits


def sanitize_description(value: Optional[str], fallback: str) -> str:
    text = _MARKUP_CHARS.sub("", value or fallback)
    return text[:DESCRIPTION_MAX_LENGTH]


def split_payer_name(full_name: Optional[str]) -> Tuple[str, str]:
    parts = (full_name or "").strip().split(" ", 1)
    first_name = parts[0] or "Cliente"
    last_name = parts[1].strip() if len(parts) > 1 else ""
    return first_name, last_name
