"""Service provider helpers for wiring the checkout services with ports.

Views never construct services directly; they call ``get_order_service``
and ``get_lifecycle_service`` so tests can patch either factory and inject
services backed by other adapters (for example ``InMemoryMarketplace``).
"""

from .repository import (
    CreditLedger,
    DjangoUnitOfWork,
    ReferenceDataRepository,
    StockLedger,
    TransactionRepository,
    VoucherLedger,
)
from .services import LifecycleService, OrderService


def get_order_service() -> OrderService:
    """Return an ``OrderService`` backed by the Django ORM adapters."""
    return OrderService(
        catalog=ReferenceDataRepository(),
        stock=StockLedger(),
        vouchers=VoucherLedger(),
        store=TransactionRepository(),
        uow=DjangoUnitOfWork(),
    )


def get_lifecycle_service() -> LifecycleService:
    """Return a ``LifecycleService`` backed by the Django ORM adapters."""
    return LifecycleService(
        catalog=ReferenceDataRepository(),
        credits=CreditLedger(),
        store=TransactionRepository(),
        uow=DjangoUnitOfWork(),
    )
