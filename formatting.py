import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from models import CURRENCY_SYMBOLS, FALLBACK_CURRENCY_SYMBOL

DISPLAY_DATE_FORMAT = "%B %d, %Y"

class InvalidDateError(ValueError):
    """Raised when a draft date is not an ISO YYYY-MM-DD string"""
    pass

def _as_amount(amount: Any) -> float:
    # bool is an int subclass but never a monetary amount
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        return 0.0
    value = float(amount)
    if not math.isfinite(value):
        return 0.0
    return value

def format_currency(amount: Any, currency: str) -> str:
    """Format amount with the currency symbol and two decimals"""
    symbol = CURRENCY_SYMBOLS.get(currency, FALLBACK_CURRENCY_SYMBOL)
    return f"{symbol}{_as_amount(amount):.2f}"

def format_number(value: float) -> str:
    """Format a quantity or percentage in fixed point without trailing zeros (10, 7.5)"""
    text = f"{value:.10f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text

def parse_iso_date(value: str) -> date:
    """Parse a YYYY-MM-DD string, raising InvalidDateError otherwise"""
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (AttributeError, ValueError):
        raise InvalidDateError(f"Invalid date '{value}'. Expected YYYY-MM-DD.")

def format_display_date(value: str) -> str:
    """Render an ISO date as e.g. 'October 19, 2026'"""
    return parse_iso_date(value).strftime(DISPLAY_DATE_FORMAT)
