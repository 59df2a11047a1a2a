"""
Currency codes, symbols and amount formatting.

Amounts are handled in minor units throughout the API; formatting
converts to major units for display only.
"""

from decimal import Decimal
from typing import Any

from ticketing.core.config import settings
from ticketing.core.errors import ValidationError

# ISO 4217
VALID_CURRENCIES = (
    "NGN",
    "USD",
    "EUR",
    "GBP",
    "GHS",
    "KES",
    "ZAR",
    "EGP",
    "JPY",
    "CNY",
    "AUD",
    "CAD",
    "CHF",
    "SEK",
    "NZD",
    "INR",
)

CURRENCY_SYMBOLS = {
    "NGN": "₦",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "GHS": "₵",
    "KES": "KSh",
    "ZAR": "R",
    "EGP": "E£",
    "JPY": "¥",
    "CNY": "¥",
    "AUD": "A$",
    "CAD": "C$",
    "CHF": "CHF",
    "SEK": "kr",
    "NZD": "NZ$",
    "INR": "₹",
}

CURRENCY_NAMES = {
    "NGN": "Nigerian Naira",
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "British Pound",
    "GHS": "Ghanaian Cedi",
    "KES": "Kenyan Shilling",
    "ZAR": "South African Rand",
    "EGP": "Egyptian Pound",
    "JPY": "Japanese Yen",
    "CNY": "Chinese Yuan",
    "AUD": "Australian Dollar",
    "CAD": "Canadian Dollar",
    "CHF": "Swiss Franc",
    "SEK": "Swedish Krona",
    "NZD": "New Zealand Dollar",
    "INR": "Indian Rupee",
}

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY"})


def validate_currency_code(code: str) -> str:
    """Return the upper-cased code or raise ValidationError."""
    normalized = (code or "").strip().upper()
    if normalized not in VALID_CURRENCIES:
        raise ValidationError(
            f"Invalid currency code: {code}",
            details={"supported": list(VALID_CURRENCIES)},
        )
    return normalized


def get_currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code.upper(), code)


def get_currency_name(code: str) -> str:
    return CURRENCY_NAMES.get(code.upper(), code)


def format_amount(amount_cents: int, currency: str | None = None, position: str = "before") -> str:
    """
    Format minor units for display, e.g. ``format_amount(123456, "USD") == "$1,234.56"``.

    Args:
        amount_cents: Amount in minor units
        currency: Currency code, defaults to the platform default
        position: "before" or "after" the number
    """
    code = (currency or settings.default_currency).upper()
    symbol = get_currency_symbol(code)
    decimals = 0 if code in ZERO_DECIMAL_CURRENCIES else 2

    amount = Decimal(int(amount_cents)) / 100
    formatted = f"{amount:,.{decimals}f}"

    if position == "after":
        return f"{formatted}{symbol}"
    return f"{symbol}{formatted}"


def get_currency_config() -> dict[str, Any]:
    default = settings.default_currency
    return {
        "default_currency": default,
        "currency_symbol": get_currency_symbol(default),
        "currency_position": "before",
        "supported_currencies": list(VALID_CURRENCIES),
        "symbols": dict(CURRENCY_SYMBOLS),
        "names": dict(CURRENCY_NAMES),
    }
