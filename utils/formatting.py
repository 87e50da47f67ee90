"""
Formatting utilities.

All prices in the CMA pipeline are integer minor units (cents).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def round_half_up(value: Union[int, float, Decimal], places: int = 0) -> Union[int, float]:
    """
    Round half away from zero.

    Python's round() uses banker's rounding; price maths must not.

    Args:
        value: Number to round.
        places: Decimal places to keep (0 returns an int).

    Returns:
        int when places == 0, otherwise float.
    """
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if places == 0:
        return int(rounded)
    return float(rounded)


def currency_symbol(currency: Optional[str]) -> str:
    """Symbol for a currency code, falling back to the code itself."""
    code = (currency or "USD").upper()
    return CURRENCY_SYMBOLS.get(code, code + " ")


def format_price(cents: Optional[int], currency: Optional[str] = "USD") -> str:
    """
    Format minor units as a whole-unit price string.

    Args:
        cents: Amount in minor units, or None.
        currency: ISO 4217 code (default USD).

    Returns:
        Formatted string such as "$350,000", or "N/A" when cents is None.
    """
    if cents is None:
        return "N/A"
    whole = round_half_up(Decimal(cents) / 100)
    sign = "-" if whole < 0 else ""
    return f"{sign}{currency_symbol(currency)}{abs(whole):,}"


def format_signed_price(cents: int, currency: Optional[str] = "USD") -> str:
    """Format an adjustment amount with an explicit sign."""
    prefix = "+" if cents >= 0 else ""
    return f"{prefix}{format_price(cents, currency)}"

