"""Repository layer implementing the checkout ports with the Django ORM.

Each class maps ORM rows to the frozen domain dataclasses so that domain
code never sees model instances. Ledger decrements are single conditional
``UPDATE`` statements built from ``F()`` expressions: the row is only
changed if the guarded field still covers the decrement, which closes the
read-then-write race between concurrent checkouts and payments.
"""

from decimal import Decimal
from typing import Iterable, List, Mapping, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from . import domain
from .errors import InsufficientCreditError, InsufficientStockError, VoucherInvalidError
from .models import (
    Courier,
    PaymentMethod,
    Product,
    Shop,
    TransactionModel,
    TransactionStatusModel,
    Voucher,
)


class DjangoUnitOfWork:
    """Unit of work backed by ``django.db.transaction.atomic``."""

    def atomic(self):
        """Open an atomic block; nested calls become savepoints.

        Returns:
            ContextManager: ``transaction.atomic()`` on the default database.
        """
        return transaction.atomic()


def _to_voucher(row: Voucher) -> domain.Voucher:
    return domain.Voucher(
        id=row.id,
        name=row.name,
        is_active=row.is_active,
        expires_at=row.expires_at,
        min_purchase=row.min_purchase,
        discount=row.discount,
        quantity=row.quantity,
    )


def _to_courier(row: Courier) -> domain.Courier:
    return domain.Courier(id=row.id, name=row.name, cost=row.cost)


def _to_payment_method(row: PaymentMethod) -> domain.PaymentMethod:
    return domain.PaymentMethod(id=row.id, name=row.name, credit=row.credit)


def _to_shop(row: Shop) -> domain.Shop:
    return domain.Shop(id=row.id, name=row.name, owner_id=row.owner_id)


class ReferenceDataRepository:
    """Read-only lookups of reference records.

    Every lookup returns ``None`` (or omits the id) for unknown ids and
    leaves the decision of which error to raise to the caller.
    """

    def get_products(self, ids: Iterable[UUID]) -> Mapping[UUID, domain.Product]:
        """Resolve product ids in one query.

        Args:
            ids: Product ids; duplicates are ignored.

        Returns:
            Mapping[UUID, domain.Product]: Only the ids that exist.
        """
        rows = Product.objects.filter(id__in=set(ids))
        return {
            row.id: domain.Product(id=row.id, name=row.name, price=row.price, stock=row.stock)
            for row in rows
        }

    def get_voucher(self, voucher_id: UUID) -> Optional[domain.Voucher]:
        row = Voucher.objects.filter(id=voucher_id).first()
        return _to_voucher(row) if row else None

    def get_courier(self, courier_id: UUID) -> Optional[domain.Courier]:
        row = Courier.objects.filter(id=courier_id).first()
        return _to_courier(row) if row else None

    def get_payment_method(self, payment_method_id: UUID) -> Optional[domain.PaymentMethod]:
        row = PaymentMethod.objects.filter(id=payment_method_id).first()
        return _to_payment_method(row) if row else None

    def get_shop(self, shop_id: UUID) -> Optional[domain.Shop]:
        row = Shop.objects.filter(id=shop_id).first()
        return _to_shop(row) if row else None

    def get_shops_owned_by(self, user_id: UUID) -> List[domain.Shop]:
        """Return every shop whose ``owner_id`` is ``user_id`` (possibly none)."""
        return [_to_shop(row) for row in Shop.objects.filter(owner_id=user_id)]


class StockLedger:
    """Stock decrements on ``Product`` rows."""

    def reserve(self, product_id: UUID, quantity: int) -> None:
        """Decrement stock only while it still covers ``quantity``.

        Args:
            product_id: Product to take stock from.
            quantity: Positive number of units.

        Raises:
            InsufficientStockError: No row matched the guarded update, either
                because stock is too low or the product does not exist.
        """
        updated = Product.objects.filter(id=product_id, stock__gte=quantity).update(
            stock=F("stock") - quantity, updated_at=timezone.now()
        )
        if updated == 0:
            name = Product.objects.filter(id=product_id).values_list("name", flat=True).first()
            raise InsufficientStockError(name or str(product_id), product_id=product_id)


class VoucherLedger:
    """Redemption counter on ``Voucher`` rows."""

    def redeem(self, voucher_id: UUID) -> None:
        """Use one redemption of an active voucher.

        Args:
            voucher_id: Voucher to redeem.

        Raises:
            VoucherInvalidError: The voucher is inactive, exhausted or unknown.
        """
        updated = Voucher.objects.filter(id=voucher_id, is_active=True, quantity__gt=0).update(
            quantity=F("quantity") - 1
        )
        if updated == 0:
            raise VoucherInvalidError(voucher_id, "Voucher has no redemptions left.")


class CreditLedger:
    """Credit balance on ``PaymentMethod`` rows."""

    def debit(self, payment_method_id: UUID, amount: Decimal) -> None:
        """Debit ``amount`` only while the balance still covers it.

        Args:
            payment_method_id: Payment method to charge.
            amount: Non-negative amount in currency units.

        Raises:
            InsufficientCreditError: No row matched the guarded update.
        """
        updated = PaymentMethod.objects.filter(id=payment_method_id, credit__gte=amount).update(
            credit=F("credit") - amount
        )
        if updated == 0:
            raise InsufficientCreditError(payment_method_id)


def _to_transaction(row: TransactionModel) -> domain.Transaction:
    return domain.Transaction(
        id=row.id,
        buyer_id=row.buyer_id,
        shop_id=row.shop_id,
        payment_method_id=row.payment_method_id,
        courier_id=row.courier_id,
        address_id=row.address_id,
        items=[
            domain.LineItem(product_id=UUID(str(p["product_id"])), quantity=int(p["quantity"]))
            for p in row.products
        ],
        total_price=row.total_price,
        created_at=row.created_at,
        updated_at=row.updated_at,
        voucher_id=row.voucher_id,
        note=row.note,
    )


def _to_status(row: TransactionStatusModel) -> domain.StatusRecord:
    return domain.StatusRecord(
        id=row.id,
        transaction_id=row.transaction_id,
        shop_id=row.shop_id,
        status=domain.TransactionStatus(row.status),
        updated_at=row.updated_at,
    )


class TransactionRepository:
    """Persists transactions and their status rows."""

    def create_transaction(self, new: domain.NewTransaction) -> domain.Transaction:
        row = TransactionModel.objects.create(
            buyer_id=new.buyer_id,
            shop_id=new.shop_id,
            payment_method_id=new.payment_method_id,
            voucher_id=new.voucher_id,
            courier_id=new.courier_id,
            address_id=new.address_id,
            products=[
                {"product_id": str(item.product_id), "quantity": item.quantity}
                for item in new.items
            ],
            total_price=new.total_price,
            note=new.note,
        )
        return _to_transaction(row)

    def create_status(self, transaction: domain.Transaction) -> domain.StatusRecord:
        row = TransactionStatusModel.objects.create(
            transaction_id=transaction.id,
            shop_id=transaction.shop_id,
            status=domain.TransactionStatus.NOT_PAID.value,
        )
        return _to_status(row)

    def get_transaction(self, transaction_id: UUID) -> Optional[domain.Transaction]:
        row = TransactionModel.objects.filter(id=transaction_id).first()
        return _to_transaction(row) if row else None

    def get_status(self, transaction_id: UUID) -> Optional[domain.StatusRecord]:
        row = TransactionStatusModel.objects.filter(transaction_id=transaction_id).first()
        return _to_status(row) if row else None

    def advance_status(
        self,
        transaction_id: UUID,
        current: domain.TransactionStatus,
        target: domain.TransactionStatus,
    ) -> Optional[domain.StatusRecord]:
        """Move the status from ``current`` to ``target`` if it is still ``current``.

        Args:
            transaction_id: Transaction whose status row is updated.
            current: Status the caller read and validated.
            target: Status to write.

        Returns:
            Optional[domain.StatusRecord]: The updated record, or ``None``
            when another writer changed the status first.
        """
        updated = TransactionStatusModel.objects.filter(
            transaction_id=transaction_id, status=current.value
        ).update(status=target.value, updated_at=timezone.now())
        if updated == 0:
            return None
        return self.get_status(transaction_id)

    def list_for_shops(self, shop_ids: Iterable[UUID]) -> List[domain.PlacedTransaction]:
        """Return the transactions of ``shop_ids``, newest first, with references."""
        qs = TransactionModel.objects.filter(shop_id__in=list(shop_ids))
        return self._placed(qs)

    def list_for_buyer(self, buyer_id: UUID) -> List[domain.PlacedTransaction]:
        """Return the buyer's transactions, newest first, with references."""
        return self._placed(TransactionModel.objects.filter(buyer_id=buyer_id))

    def _placed(self, qs) -> List[domain.PlacedTransaction]:
        rows = qs.select_related(
            "status_record", "courier", "voucher", "payment_method"
        ).order_by("-created_at")
        return [
            domain.PlacedTransaction(
                transaction=_to_transaction(row),
                status=_to_status(row.status_record),
                courier=_to_courier(row.courier),
                voucher=_to_voucher(row.voucher) if row.voucher_id else None,
                payment_method=_to_payment_method(row.payment_method),
            )
            for row in rows
            if hasattr(row, "status_record")
        ]
