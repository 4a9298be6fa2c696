"""
Formatting helpers for templates.
Prices are stored as integer cents; timestamps as timezone-aware datetimes.
"""
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Union, Optional


def format_cents(value: Union[int, str, None], currency: str = '$') -> str:
    """
    Format an amount in cents as money.

    Examples:
        format_cents(150000) -> "$1,500"
        format_cents(1999) -> "$19.99"
        format_cents(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        amount = Decimal(int(value)) / Decimal(100)
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    if amount == amount.to_integral_value():
        return f"{currency}{int(amount):,}"
    return f"{currency}{amount:,.2f}"


def discount_percent(original_cents: Optional[int], sale_cents: Optional[int]) -> Optional[int]:
    """
    Whole-number discount of a sale price, or None when there is no discount.

    Examples:
        discount_percent(10000, 7500) -> 25
        discount_percent(10000, None) -> None
    """
    if not original_cents or not sale_cents or sale_cents >= original_cents:
        return None
    return int(round((original_cents - sale_cents) * 100 / original_cents))


def time_short(value: Union[datetime, str, None]) -> str:
    """HH:MM of a timestamp (ISO strings accepted), "-" when missing."""
    if value is None or value == "":
        return "-"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return "-"
    return value.strftime('%H:%M')
