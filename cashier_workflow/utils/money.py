"""Amount parsing and formatting utilities"""

from decimal import Decimal, InvalidOperation
from typing import Optional


def parse_amount(raw: str | None) -> Optional[Decimal]:
    """
    Parse a user-typed amount into a positive Decimal.

    Returns None for empty input, non-numbers, NaN/Infinity and values <= 0.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def to_decimal(value) -> Decimal:
    """Convert a JSON number or numeric string to Decimal without float drift"""
    if isinstance(value, bool):
        raise TypeError("Boolean is not an amount")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def format_amount(value: Decimal, currency: str = "") -> str:
    """Render an amount with thousands separators, dropping trailing zero cents"""
    quantized = value.quantize(Decimal("0.01"))
    text = f"{quantized:,.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    return f"{text} {currency}".strip()
