"""Markup arithmetic for supplier-sourced products.

All amounts are integers in minor currency units.  Percentage markups
round half away from zero to the nearest unit, so 999 at 50% is 1499
(1498.5 rounds up) rather than banker's-rounded 1498.
"""

from decimal import Decimal, ROUND_HALF_UP

from dropship.models.product_supplier_mapping import MarkupType


def selling_price(
    supplier_price: int,
    markup_type: str,
    markup_percentage: Decimal | float | int | None = None,
    fixed_markup: int | None = None,
) -> int:
    """Derive the retail price from the supplier's cost and a markup rule."""
    if supplier_price < 0:
        raise ValueError("supplier_price must be >= 0")

    if markup_type == MarkupType.FIXED.value:
        return supplier_price + int(fixed_markup or 0)

    if markup_type != MarkupType.PERCENTAGE.value:
        raise ValueError(f"Unknown markup_type: {markup_type}")

    pct = Decimal(str(markup_percentage or 0))
    price = Decimal(supplier_price) * (Decimal(1) + pct / Decimal(100))
    return int(price.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def markup_amount(
    supplier_price: int,
    markup_type: str,
    markup_percentage: Decimal | float | int | None = None,
    fixed_markup: int | None = None,
) -> int:
    return selling_price(supplier_price, markup_type, markup_percentage, fixed_markup) - supplier_price


def mapping_selling_price(mapping, supplier_price: int) -> int:
    """`selling_price` using a ProductSupplierMapping's markup settings."""
    return selling_price(
        supplier_price,
        mapping.markup_type,
        mapping.markup_percentage,
        mapping.fixed_markup,
    )
