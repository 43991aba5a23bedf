"""Pytest configuration and shared fixtures.

Two worlds are seeded with the same reference data: ``memory`` uses the
in-process ``InMemoryMarketplace`` adapters for domain tests, ``catalog``
writes ORM rows for repository and API tests.
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from django.utils import timezone

from apps.checkout import domain
from apps.checkout.adapters import InMemoryMarketplace
from apps.checkout.services import LifecycleService, OrderService


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def memory(seller_id) -> SimpleNamespace:
    """In-memory marketplace with one shop, product P, voucher V and courier C.

    P: price 10000, stock 5. V: 10% off above 50000, 3 redemptions.
    C: costs 5000. Wallet: 100000 credit.
    """
    store = InMemoryMarketplace()
    shop = store.add(domain.Shop(id=uuid.uuid4(), owner_id=seller_id, name="Shop A"))
    other_shop = store.add(domain.Shop(id=uuid.uuid4(), owner_id=uuid.uuid4(), name="Shop B"))
    product = store.add(
        domain.Product(id=uuid.uuid4(), name="P", price=Decimal("10000.00"), stock=5)
    )
    other_product = store.add(
        domain.Product(id=uuid.uuid4(), name="Q", price=Decimal("2500.00"), stock=10)
    )
    voucher = store.add(
        domain.Voucher(
            id=uuid.uuid4(),
            is_active=True,
            expires_at=timezone.now() + timedelta(days=7),
            min_purchase=Decimal("50000.00"),
            discount=Decimal("10"),
            quantity=3,
            name="V",
        )
    )
    courier = store.add(domain.Courier(id=uuid.uuid4(), cost=Decimal("5000.00"), name="C"))
    wallet = store.add(domain.PaymentMethod(id=uuid.uuid4(), credit=Decimal("100000.00")))
    return SimpleNamespace(
        store=store,
        shop=shop,
        other_shop=other_shop,
        product=product,
        other_product=other_product,
        voucher=voucher,
        courier=courier,
        wallet=wallet,
    )


@pytest.fixture
def order_service(memory) -> OrderService:
    s = memory.store
    return OrderService(catalog=s, stock=s, vouchers=s, store=s, uow=s)


@pytest.fixture
def lifecycle(memory) -> LifecycleService:
    s = memory.store
    return LifecycleService(catalog=s, credits=s, store=s, uow=s)


@pytest.fixture
def catalog(db, seller_id) -> SimpleNamespace:
    """ORM rows mirroring the ``memory`` fixture."""
    from apps.checkout import models

    return SimpleNamespace(
        shop=models.Shop.objects.create(name="Shop A", owner_id=seller_id),
        other_shop=models.Shop.objects.create(name="Shop B", owner_id=uuid.uuid4()),
        product=models.Product.objects.create(name="P", price=Decimal("10000.00"), stock=5),
        other_product=models.Product.objects.create(
            name="Q", price=Decimal("2500.00"), stock=10
        ),
        voucher=models.Voucher.objects.create(
            name="V",
            is_active=True,
            expires_at=timezone.now() + timedelta(days=7),
            min_purchase=Decimal("50000.00"),
            discount=Decimal("10"),
            quantity=3,
        ),
        courier=models.Courier.objects.create(name="C", cost=Decimal("5000.00")),
        wallet=models.PaymentMethod.objects.create(name="Wallet", credit=Decimal("100000.00")),
    )
