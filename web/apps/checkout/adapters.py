"""In-process adapters for the checkout domain ports.

``InMemoryMarketplace`` implements every port declared in ``domain``
(reference data, stock, voucher and credit ledgers, transaction store and
unit of work) on top of plain dictionaries. It is intended for unit tests
and local development where deterministic behavior is useful and a
database is not required.
"""

import copy
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from .domain import (
    Courier,
    NewTransaction,
    PaymentMethod,
    PlacedTransaction,
    Product,
    Shop,
    StatusRecord,
    Transaction,
    TransactionStatus,
    Voucher,
)
from .errors import InsufficientCreditError, InsufficientStockError, VoucherInvalidError


class InMemoryMarketplace:
    """Dictionary-backed implementation of all checkout ports.

    Mutating ledger operations follow the same conditional rules as the
    ORM adapters: a decrement that would go below zero is rejected and
    leaves the record untouched. ``atomic()`` snapshots every table and
    restores the snapshot when the block raises.
    """

    def __init__(self) -> None:
        self.products: Dict[UUID, Product] = {}
        self.vouchers: Dict[UUID, Voucher] = {}
        self.couriers: Dict[UUID, Courier] = {}
        self.payment_methods: Dict[UUID, PaymentMethod] = {}
        self.shops: Dict[UUID, Shop] = {}
        self.transactions: Dict[UUID, Transaction] = {}
        self.statuses: Dict[UUID, StatusRecord] = {}

    # ---- seeding ----
    def add(self, record):
        """Register a reference record under its id and return it."""
        table = {
            Product: self.products,
            Voucher: self.vouchers,
            Courier: self.couriers,
            PaymentMethod: self.payment_methods,
            Shop: self.shops,
        }[type(record)]
        table[record.id] = record
        return record

    # ---- UnitOfWork ----
    @contextmanager
    def atomic(self):
        """Run the block all-or-nothing.

        Mutable tables are shallow-copied on entry; records are frozen, so
        restoring the copies undoes every change made inside the block.
        """
        tables = ("products", "vouchers", "payment_methods", "transactions", "statuses")
        snapshot = {name: copy.copy(getattr(self, name)) for name in tables}
        try:
            yield
        except BaseException:
            for name, saved in snapshot.items():
                setattr(self, name, saved)
            raise

    # ---- ReferenceDataPort ----
    def get_products(self, ids: Iterable[UUID]) -> Mapping[UUID, Product]:
        """Resolve product ids, omitting those that are not registered."""
        return {pid: self.products[pid] for pid in set(ids) if pid in self.products}

    def get_voucher(self, voucher_id: UUID) -> Optional[Voucher]:
        return self.vouchers.get(voucher_id)

    def get_courier(self, courier_id: UUID) -> Optional[Courier]:
        return self.couriers.get(courier_id)

    def get_payment_method(self, payment_method_id: UUID) -> Optional[PaymentMethod]:
        return self.payment_methods.get(payment_method_id)

    def get_shop(self, shop_id: UUID) -> Optional[Shop]:
        return self.shops.get(shop_id)

    def get_shops_owned_by(self, user_id: UUID) -> List[Shop]:
        """Return every registered shop owned by ``user_id``."""
        return [shop for shop in self.shops.values() if shop.owner_id == user_id]

    # ---- ledgers ----
    def reserve(self, product_id: UUID, quantity: int) -> None:
        """Take ``quantity`` units of a product out of stock.

        Args:
            product_id: Product to take stock from.
            quantity: Positive number of units.

        Raises:
            InsufficientStockError: Stock is lower than ``quantity`` or the
                product is unknown; stock is left unchanged.
        """
        product = self.products.get(product_id)
        if product is None or product.stock < quantity:
            name = product.name if product else str(product_id)
            raise InsufficientStockError(name, product_id=product_id)
        self.products[product_id] = replace(product, stock=product.stock - quantity)

    def redeem(self, voucher_id: UUID) -> None:
        """Use one redemption of an active voucher.

        Raises:
            VoucherInvalidError: The voucher is unknown, inactive or exhausted.
        """
        voucher = self.vouchers.get(voucher_id)
        if voucher is None or not voucher.is_active or voucher.quantity <= 0:
            raise VoucherInvalidError(voucher_id, "Voucher has no redemptions left.")
        self.vouchers[voucher_id] = replace(voucher, quantity=voucher.quantity - 1)

    def debit(self, payment_method_id: UUID, amount: Decimal) -> None:
        """Subtract ``amount`` from a payment method's credit.

        Args:
            payment_method_id: Payment method to charge.
            amount: Amount in currency units.

        Raises:
            InsufficientCreditError: The balance does not cover ``amount``
                or the payment method is unknown.
        """
        method = self.payment_methods.get(payment_method_id)
        if method is None or method.credit < amount:
            raise InsufficientCreditError(payment_method_id)
        self.payment_methods[payment_method_id] = replace(method, credit=method.credit - amount)

    # ---- TransactionStorePort ----
    def create_transaction(self, new: NewTransaction) -> Transaction:
        """Store ``new`` under a fresh id with both timestamps set to now."""
        now = datetime.now(timezone.utc)
        transaction = Transaction(
            id=uuid.uuid4(),
            buyer_id=new.buyer_id,
            shop_id=new.shop_id,
            payment_method_id=new.payment_method_id,
            courier_id=new.courier_id,
            address_id=new.address_id,
            items=list(new.items),
            total_price=new.total_price,
            created_at=now,
            updated_at=now,
            voucher_id=new.voucher_id,
            note=new.note,
        )
        self.transactions[transaction.id] = transaction
        return transaction

    def create_status(self, transaction: Transaction) -> StatusRecord:
        """Create the Not Paid status record of ``transaction``."""
        status = StatusRecord(
            id=uuid.uuid4(),
            transaction_id=transaction.id,
            shop_id=transaction.shop_id,
            status=TransactionStatus.NOT_PAID,
            updated_at=transaction.created_at,
        )
        self.statuses[transaction.id] = status
        return status

    def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self.transactions.get(transaction_id)

    def get_status(self, transaction_id: UUID) -> Optional[StatusRecord]:
        return self.statuses.get(transaction_id)

    def advance_status(self, transaction_id, current, target) -> Optional[StatusRecord]:
        """Compare-and-set the status.

        Returns:
            Optional[StatusRecord]: The updated record, or ``None`` when the
            stored status is no longer ``current``.
        """
        status = self.statuses.get(transaction_id)
        if status is None or status.status != current:
            return None
        updated = replace(status, status=target, updated_at=datetime.now(timezone.utc))
        self.statuses[transaction_id] = updated
        return updated

    def list_for_shops(self, shop_ids: Iterable[UUID]) -> List[PlacedTransaction]:
        """Return the transactions of ``shop_ids``, newest first."""
        wanted = set(shop_ids)
        return self._placed(t for t in self.transactions.values() if t.shop_id in wanted)

    def list_for_buyer(self, buyer_id: UUID) -> List[PlacedTransaction]:
        """Return the buyer's transactions, newest first."""
        return self._placed(t for t in self.transactions.values() if t.buyer_id == buyer_id)

    def _placed(self, transactions) -> List[PlacedTransaction]:
        ordered = sorted(transactions, key=lambda t: t.created_at, reverse=True)
        return [
            PlacedTransaction(
                transaction=t,
                status=self.statuses[t.id],
                courier=self.couriers.get(t.courier_id),
                voucher=self.vouchers.get(t.voucher_id) if t.voucher_id else None,
                payment_method=self.payment_methods.get(t.payment_method_id),
            )
            for t in ordered
            if t.id in self.statuses
        ]
