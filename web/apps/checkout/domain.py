"""Domain models, ports and the lifecycle transition table for checkout.

This module contains the dataclasses exchanged between the services and
their adapters, the closed set of transaction statuses together with the
rules that govern moving between them, and protocol definitions (ports)
for reference data, the stock/voucher/credit ledgers, the transaction
store and the unit of work. It has no Django imports.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import ContextManager, Iterable, List, Mapping, Optional, Protocol
from uuid import UUID

from .errors import AlreadyInTargetStateError, InvalidStateError

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize a numeric value to cents, rounding half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ---- Lifecycle ----
class TransactionStatus(str, Enum):
    """Forward-only lifecycle of a transaction."""

    NOT_PAID = "Not Paid"
    PAID = "Paid"
    PROCESSED = "Processed"
    COMPLETED = "Completed"


# target -> the only state it may be entered from
TRANSITIONS = {
    TransactionStatus.PAID: TransactionStatus.NOT_PAID,
    TransactionStatus.PROCESSED: TransactionStatus.PAID,
    TransactionStatus.COMPLETED: TransactionStatus.PROCESSED,
}


def require_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    """Validate that ``current`` may move to ``target``.

    Raises:
        AlreadyInTargetStateError: ``current`` already equals ``target``.
        InvalidStateError: ``current`` is not the required predecessor.
    """
    required = TRANSITIONS[target]
    if current == target:
        raise AlreadyInTargetStateError(current, required, target)
    if current != required:
        raise InvalidStateError(current, required, target)


# ---- Checkout input ----
@dataclass(frozen=True)
class LineItem:
    """A product id and the requested quantity."""

    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class ShopGroup:
    """The part of a checkout that belongs to one shop."""

    shop_id: UUID
    courier_id: UUID
    items: List[LineItem]
    note: Optional[str] = None


@dataclass(frozen=True)
class CheckoutRequest:
    """Ephemeral multi-shop checkout request; never persisted as such."""

    buyer_id: UUID
    payment_method_id: UUID
    address_id: UUID
    shop_groups: List[ShopGroup]
    voucher_id: Optional[UUID] = None


# ---- Reference data ----
@dataclass(frozen=True)
class Product:
    id: UUID
    name: str
    price: Decimal
    stock: int


@dataclass(frozen=True)
class Voucher:
    id: UUID
    is_active: bool
    expires_at: datetime
    min_purchase: Decimal
    discount: Decimal
    quantity: int
    name: str = ""


@dataclass(frozen=True)
class Courier:
    id: UUID
    cost: Decimal
    name: str = ""


@dataclass(frozen=True)
class PaymentMethod:
    id: UUID
    credit: Decimal
    name: str = ""


@dataclass(frozen=True)
class Shop:
    id: UUID
    owner_id: UUID
    name: str = ""


# ---- Transactions ----
@dataclass(frozen=True)
class NewTransaction:
    """Values needed to create a transaction record."""

    buyer_id: UUID
    shop_id: UUID
    payment_method_id: UUID
    courier_id: UUID
    address_id: UUID
    items: List[LineItem]
    total_price: Decimal
    voucher_id: Optional[UUID] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class Transaction:
    """A persisted transaction. ``total_price`` is fixed at creation."""

    id: UUID
    buyer_id: UUID
    shop_id: UUID
    payment_method_id: UUID
    courier_id: UUID
    address_id: UUID
    items: List[LineItem]
    total_price: Decimal
    created_at: datetime
    updated_at: datetime
    voucher_id: Optional[UUID] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class StatusRecord:
    """The one-to-one status row of a transaction."""

    id: UUID
    transaction_id: UUID
    shop_id: UUID
    status: TransactionStatus
    updated_at: datetime


@dataclass(frozen=True)
class PlacedTransaction:
    """A transaction paired with its status record.

    Listings also carry the referenced courier, voucher and payment method
    so readers get their names without a second lookup. They are ``None``
    on the records returned by checkout, and ``voucher`` is ``None`` when
    the transaction used none.
    """

    transaction: Transaction
    status: StatusRecord
    courier: Optional[Courier] = None
    voucher: Optional[Voucher] = None
    payment_method: Optional[PaymentMethod] = None


@dataclass(frozen=True)
class PriceBreakdown:
    """Per-shop price: discounted subtotal plus shipping."""

    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    total: Decimal


# ---- Ports (DIP) ----
class ReferenceDataPort(Protocol):
    """Read-only lookups of catalog-like records."""

    def get_products(self, ids: Iterable[UUID]) -> Mapping[UUID, Product]:
        """Return the subset of ``ids`` that resolve, keyed by id."""
        raise NotImplementedError()

    def get_voucher(self, voucher_id: UUID) -> Optional[Voucher]:
        raise NotImplementedError()

    def get_courier(self, courier_id: UUID) -> Optional[Courier]:
        raise NotImplementedError()

    def get_payment_method(self, payment_method_id: UUID) -> Optional[PaymentMethod]:
        raise NotImplementedError()

    def get_shop(self, shop_id: UUID) -> Optional[Shop]:
        raise NotImplementedError()

    def get_shops_owned_by(self, user_id: UUID) -> List[Shop]:
        raise NotImplementedError()


class StockLedgerPort(Protocol):
    def reserve(self, product_id: UUID, quantity: int) -> None:
        """Decrement stock by ``quantity``.

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units remain.
        """
        raise NotImplementedError()


class VoucherLedgerPort(Protocol):
    def redeem(self, voucher_id: UUID) -> None:
        """Decrement the voucher's remaining quantity by one.

        Raises:
            VoucherInvalidError: If the voucher is exhausted or inactive.
        """
        raise NotImplementedError()


class CreditLedgerPort(Protocol):
    def debit(self, payment_method_id: UUID, amount: Decimal) -> None:
        """Debit ``amount`` from the payment method's credit.

        Raises:
            InsufficientCreditError: If the balance is lower than ``amount``.
        """
        raise NotImplementedError()


class TransactionStorePort(Protocol):
    def create_transaction(self, new: NewTransaction) -> Transaction:
        raise NotImplementedError()

    def create_status(self, transaction: Transaction) -> StatusRecord:
        """Create the status row of ``transaction`` in ``NOT_PAID``."""
        raise NotImplementedError()

    def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        raise NotImplementedError()

    def get_status(self, transaction_id: UUID) -> Optional[StatusRecord]:
        raise NotImplementedError()

    def advance_status(
        self,
        transaction_id: UUID,
        current: TransactionStatus,
        target: TransactionStatus,
    ) -> Optional[StatusRecord]:
        """Compare-and-set the status; return None if it was not ``current``."""
        raise NotImplementedError()

    def list_for_shops(self, shop_ids: Iterable[UUID]) -> List[PlacedTransaction]:
        raise NotImplementedError()

    def list_for_buyer(self, buyer_id: UUID) -> List[PlacedTransaction]:
        raise NotImplementedError()


class UnitOfWork(Protocol):
    def atomic(self) -> ContextManager[None]:
        """Scope in which every mutation commits together or not at all."""
        raise NotImplementedError()
