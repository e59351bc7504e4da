from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from marketplace.core import config

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a price-like value (Decimal, int, float, str) to a 2dp Decimal"""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def effective_unit_price(product) -> Decimal:
    """Sale price when the product has one, list price otherwise"""
    if product.sale_price is not None:
        return to_money(product.sale_price)
    return to_money(product.price)


def delivery_fee_for(
    subtotal: Decimal,
    fee: Optional[Decimal] = None,
    free_threshold: Optional[Decimal] = None,
) -> Decimal:
    # Flat fee, waived once the subtotal goes strictly above the threshold.
    fee = config.DELIVERY_FEE if fee is None else fee
    free_threshold = config.FREE_DELIVERY_THRESHOLD if free_threshold is None else free_threshold
    if subtotal > free_threshold:
        return to_money(0)
    return to_money(fee)
