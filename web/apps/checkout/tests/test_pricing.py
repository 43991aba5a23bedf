"""Unit tests for per-shop pricing.

``price_shop_group`` is pure, so these tests build reference records by
hand and check the total and the order in which validation errors win.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from apps.checkout.domain import Courier, LineItem, Product, Voucher
from apps.checkout.errors import (
    CourierNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    VoucherInvalidError,
    VoucherThresholdNotMetError,
)
from apps.checkout.pricing import price_shop_group

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
SHOP = uuid.uuid4()
P = Product(id=uuid.uuid4(), name="P", price=Decimal("10000.00"), stock=5)
Q = Product(id=uuid.uuid4(), name="Q", price=Decimal("2500.00"), stock=1)
C = Courier(id=uuid.uuid4(), cost=Decimal("5000.00"))
PRODUCTS = {P.id: P, Q.id: Q}


def voucher(**overrides) -> Voucher:
    values = dict(
        id=uuid.uuid4(),
        is_active=True,
        expires_at=NOW + timedelta(days=1),
        min_purchase=Decimal("50000.00"),
        discount=Decimal("10"),
        quantity=3,
    )
    values.update(overrides)
    return Voucher(**values)


def test_subtotal_plus_courier_without_voucher():
    """2xP + 1xQ = 22500, plus 5000 shipping."""
    price = price_shop_group(SHOP, [LineItem(P.id, 2), LineItem(Q.id, 1)], PRODUCTS, C, NOW)
    assert price.subtotal == Decimal("22500.00")
    assert price.discount == Decimal("0.00")
    assert price.total == Decimal("27500.00")


def test_voucher_discount_at_threshold():
    """5xP = 50000 meets the minimum: 10% off then 5000 shipping -> 50000."""
    v = voucher()
    price = price_shop_group(SHOP, [LineItem(P.id, 5)], PRODUCTS, C, NOW, v.id, v)
    assert price.discount == Decimal("5000.00")
    assert price.total == Decimal("50000.00")


def test_discount_rounds_half_up_to_cents():
    v = voucher(min_purchase=Decimal("0"), discount=Decimal("33.33"))
    price = price_shop_group(SHOP, [LineItem(Q.id, 1)], PRODUCTS, C, NOW, v.id, v)
    # 2500 * 0.3333 = 833.25
    assert price.discount == Decimal("833.25")
    assert price.total == Decimal("6666.75")


def test_full_discount_never_goes_below_shipping():
    v = voucher(min_purchase=Decimal("0"), discount=Decimal("100"))
    price = price_shop_group(SHOP, [LineItem(P.id, 1)], PRODUCTS, C, NOW, v.id, v)
    assert price.total == C.cost


def test_missing_product_raises_naming_shop():
    with pytest.raises(ProductNotFoundError) as e:
        price_shop_group(SHOP, [LineItem(uuid.uuid4(), 1)], PRODUCTS, C, NOW)
    assert e.value.context["shop_id"] == str(SHOP)
    assert str(e.value) == "PRODUCT_NOT_FOUND"


def test_stock_is_checked_before_voucher_threshold():
    """6xP would be 60000 but stock (5) fails first."""
    v = voucher()
    with pytest.raises(InsufficientStockError) as e:
        price_shop_group(SHOP, [LineItem(P.id, 6)], PRODUCTS, C, NOW, v.id, v)
    assert e.value.context["product"] == "P"
    assert "P" in e.value.message and str(SHOP) in e.value.message


@pytest.mark.parametrize(
    "v",
    [
        None,
        voucher(is_active=False),
        voucher(expires_at=NOW - timedelta(seconds=1)),
        voucher(quantity=0),
    ],
    ids=["missing", "inactive", "expired", "exhausted"],
)
def test_unusable_voucher(v):
    vid = v.id if v else uuid.uuid4()
    with pytest.raises(VoucherInvalidError):
        price_shop_group(SHOP, [LineItem(P.id, 5)], PRODUCTS, C, NOW, vid, v)


def test_voucher_expiring_exactly_now_is_still_valid():
    v = voucher(expires_at=NOW)
    price = price_shop_group(SHOP, [LineItem(P.id, 5)], PRODUCTS, C, NOW, v.id, v)
    assert price.discount == Decimal("5000.00")


def test_voucher_threshold_not_met():
    v = voucher()
    with pytest.raises(VoucherThresholdNotMetError) as e:
        price_shop_group(SHOP, [LineItem(P.id, 4)], PRODUCTS, C, NOW, v.id, v)
    assert e.value.context["min_purchase"] == "50000.00"


def test_missing_courier_is_reported_after_voucher_checks():
    cid = uuid.uuid4()
    with pytest.raises(CourierNotFoundError) as e:
        price_shop_group(SHOP, [LineItem(P.id, 1)], PRODUCTS, None, NOW, courier_id=cid)
    assert e.value.context["courier_id"] == str(cid)

    v = voucher(is_active=False)
    with pytest.raises(VoucherInvalidError):
        price_shop_group(SHOP, [LineItem(P.id, 1)], PRODUCTS, None, NOW, v.id, v)
