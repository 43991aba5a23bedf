"""Per-shop pricing: subtotal, voucher discount and shipping.

``price_shop_group`` is a pure function of its inputs. It validates the
shop group against the resolved reference data and returns a
``PriceBreakdown``; applying stock, voucher or credit mutations is left to
the caller once pricing has succeeded for the shop.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Mapping, Optional
from uuid import UUID

from .domain import CENT, Courier, LineItem, PriceBreakdown, Product, Voucher, to_money
from .errors import (
    CourierNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    VoucherInvalidError,
    VoucherThresholdNotMetError,
)

ZERO = Decimal("0.00")


def check_voucher(voucher_id: UUID, voucher: Optional[Voucher], now: datetime) -> Voucher:
    """Return ``voucher`` if it can be used at ``now``.

    Raises:
        VoucherInvalidError: Missing, inactive, expired or exhausted voucher.
    """
    if voucher is None or not voucher.is_active or voucher.expires_at < now:
        raise VoucherInvalidError(voucher_id)
    if voucher.quantity <= 0:
        raise VoucherInvalidError(voucher_id, "Voucher has no redemptions left.")
    return voucher


def price_shop_group(
    shop_id: UUID,
    items: List[LineItem],
    products: Mapping[UUID, Product],
    courier: Optional[Courier],
    now: datetime,
    voucher_id: Optional[UUID] = None,
    voucher: Optional[Voucher] = None,
    courier_id: Optional[UUID] = None,
) -> PriceBreakdown:
    """Price one shop group of a checkout.

    Checks run in a fixed order and the first failure wins: products
    resolve, stock covers every line, the voucher (when ``voucher_id`` is
    given) is usable and its minimum purchase is met, the courier resolves.

    Args:
        shop_id: Shop the group belongs to; used in error context.
        items: Line items of the group.
        products: Resolved products, keyed by id.
        courier: Resolved courier, or None if it did not resolve.
        now: Reference time for the voucher expiry check.
        voucher_id: Voucher requested by the checkout, if any.
        voucher: Resolved voucher, or None if it did not resolve.
        courier_id: Requested courier id; used in error context.

    Returns:
        PriceBreakdown with total = max(subtotal - discount, 0) + shipping.
    """
    requested = {item.product_id for item in items}
    if len(requested & set(products)) != len(requested):
        raise ProductNotFoundError(shop_id)

    subtotal = ZERO
    for item in items:
        product = products[item.product_id]
        if product.stock < item.quantity:
            raise InsufficientStockError(product.name, shop_id=shop_id, product_id=product.id)
        subtotal += product.price * item.quantity
    subtotal = to_money(subtotal)

    discount = ZERO
    if voucher_id is not None:
        usable = check_voucher(voucher_id, voucher, now)
        if subtotal < usable.min_purchase:
            raise VoucherThresholdNotMetError(shop_id, usable.min_purchase)
        discount = to_money(subtotal * usable.discount / 100)

    discounted = max(subtotal - discount, ZERO)

    if courier is None:
        raise CourierNotFoundError(courier_id, shop_id=shop_id)
    shipping = to_money(courier.cost)

    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        total=(discounted + shipping).quantize(CENT),
    )
