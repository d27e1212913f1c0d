"""
Money helpers. Persisted amounts are integer minor units (cents for USD,
yen for JPY).
"""

import re
from decimal import Decimal, ROUND_HALF_UP

ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK", "HUF", "TWD", "UGX", "XAF", "XOF"}

_NON_NUMERIC = re.compile(r"[^\d.-]")


def fraction_digits(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_minor_units(amount: float, currency: str) -> int:
    """Convert a major-unit amount, e.g. 12.5 USD -> 1250."""
    scale = Decimal(10) ** fraction_digits(currency)
    return int((Decimal(str(amount)) * scale).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_money_to_minor_units(text: str, currency: str = "USD") -> int:
    """
    Parse a user-entered amount such as "1,234.50" or "$12" into minor units.

    Everything but digits, the dot and a leading minus is ignored; extra
    fraction digits are truncated.
    """
    normalized = _NON_NUMERIC.sub("", text.strip())
    if not normalized:
        return 0

    negative = normalized.startswith("-")
    digits_only = normalized.lstrip("-")
    whole, _, fraction = digits_only.partition(".")
    whole = re.sub(r"\D", "", whole) or "0"
    fraction = re.sub(r"\D", "", fraction)

    places = fraction_digits(currency)
    if places == 0:
        value = int(whole)
    else:
        value = int(whole + fraction.ljust(places, "0")[:places])
    return -value if negative else value


def format_price(price: float) -> str:
    """Shortest text for a price: 12800.0 -> "12800", 12.5 -> "12.5"."""
    price = float(price)
    if price.is_integer():
        return str(int(price))
    return repr(price)
