"""
Order totals in integer minor units.

Each priced line is a dict with ``unit_price_cents``, ``unit_fee_cents``
and ``quantity``. The organizer's per-ticket fee goes to the organizer;
the configured platform fee is added per ticket on top.
"""

from collections.abc import Iterable
from typing import Any

SALES_TAX_NAME = "Sales Tax"
PLATFORM_FEE_NAME = "Platform Fee"
SERVICE_FEE_NAME = "Service Fee"


def calculate_tax(subtotal_cents: int, rate_bps: int) -> int:
    """Tax on the subtotal, rounded down to the minor unit (700 bps = 7%)."""
    return subtotal_cents * rate_bps // 10000


def calculate_order_totals(
    lines: Iterable[dict[str, Any]], *, tax_rate_bps: int, platform_fee_cents: int
) -> dict[str, int]:
    """
    Returns:
        Dict with subtotal_cents, service_fee_cents (organizer),
        platform_fee_cents, fees_cents (both fees), tax_cents and total_cents
    """
    subtotal = 0
    service_fees = 0
    platform_fees = 0
    for line in lines:
        quantity = line["quantity"]
        subtotal += line["unit_price_cents"] * quantity
        service_fees += line["unit_fee_cents"] * quantity
        platform_fees += platform_fee_cents * quantity

    fees = service_fees + platform_fees
    tax = calculate_tax(subtotal, tax_rate_bps)
    return {
        "subtotal_cents": subtotal,
        "service_fee_cents": service_fees,
        "platform_fee_cents": platform_fees,
        "fees_cents": fees,
        "tax_cents": tax,
        "total_cents": subtotal + fees + tax,
    }
