"""Domain services: checkout orchestration and the transaction lifecycle.

``OrderService`` splits a multi-shop checkout into one priced transaction
per shop. ``LifecycleService`` moves a single transaction through
Not Paid -> Paid -> Processed -> Completed. Both depend only on the ports
declared in ``domain`` and do not handle HTTP or ORM details.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List
from uuid import UUID

from .domain import (
    TRANSITIONS,
    CheckoutRequest,
    CreditLedgerPort,
    NewTransaction,
    PlacedTransaction,
    ReferenceDataPort,
    ShopGroup,
    StatusRecord,
    StockLedgerPort,
    Transaction,
    TransactionStatus,
    TransactionStorePort,
    UnitOfWork,
    VoucherLedgerPort,
    require_transition,
)
from .errors import (
    InsufficientCreditError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from .pricing import price_shop_group

log = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Creates transactions from checkouts and lists them.

    A checkout is processed shop group by shop group in input order. For
    each group the service prices and validates it, redeems the voucher,
    creates the transaction and its status, then decrements stock. The
    whole checkout runs inside one ``UnitOfWork.atomic()`` scope: a failure
    in any group leaves no transaction, redemption or stock change behind.
    """

    def __init__(
        self,
        catalog: ReferenceDataPort,
        stock: StockLedgerPort,
        vouchers: VoucherLedgerPort,
        store: TransactionStorePort,
        uow: UnitOfWork,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.stock = stock
        self.vouchers = vouchers
        self.store = store
        self.uow = uow
        self.clock = clock

    def create_order(self, request: CheckoutRequest) -> List[PlacedTransaction]:
        """Create one transaction per shop group.

        Args:
            request: The checkout to split.

        Returns:
            One ``PlacedTransaction`` per shop group, in input order.

        Raises:
            ValidationFailedError: Malformed request shape.
            NotFoundError: Unknown payment method or shop.
            ProductNotFoundError, InsufficientStockError, VoucherInvalidError,
            VoucherThresholdNotMetError, CourierNotFoundError: A shop group
                failed validation; nothing of the checkout is committed.
        """
        validate_checkout(request)
        if self.catalog.get_payment_method(request.payment_method_id) is None:
            raise NotFoundError("Payment method", request.payment_method_id)

        with self.uow.atomic():
            placed = [self._place_group(request, group) for group in request.shop_groups]

        log.info(
            "checkout placed",
            extra={
                "buyer_id": str(request.buyer_id),
                "transactions": [str(p.transaction.id) for p in placed],
            },
        )
        return placed

    def _place_group(self, request: CheckoutRequest, group: ShopGroup) -> PlacedTransaction:
        if self.catalog.get_shop(group.shop_id) is None:
            raise NotFoundError("Shop", group.shop_id)
        products = self.catalog.get_products([item.product_id for item in group.items])
        voucher = (
            self.catalog.get_voucher(request.voucher_id)
            if request.voucher_id is not None
            else None
        )
        courier = self.catalog.get_courier(group.courier_id)

        price = price_shop_group(
            group.shop_id,
            group.items,
            products,
            courier,
            self.clock(),
            voucher_id=request.voucher_id,
            voucher=voucher,
            courier_id=group.courier_id,
        )

        if request.voucher_id is not None:
            self.vouchers.redeem(request.voucher_id)

        transaction = self.store.create_transaction(
            NewTransaction(
                buyer_id=request.buyer_id,
                shop_id=group.shop_id,
                payment_method_id=request.payment_method_id,
                courier_id=group.courier_id,
                address_id=request.address_id,
                items=list(group.items),
                total_price=price.total,
                voucher_id=request.voucher_id,
                note=group.note,
            )
        )
        status = self.store.create_status(transaction)

        for item in group.items:
            self.stock.reserve(item.product_id, item.quantity)

        return PlacedTransaction(transaction=transaction, status=status)

    def list_for_seller(self, user_id: UUID) -> List[PlacedTransaction]:
        """Return the transactions of every shop owned by ``user_id``.

        Raises:
            UnauthorizedError: The user owns no shop.
        """
        shops = self.catalog.get_shops_owned_by(user_id)
        if not shops:
            raise UnauthorizedError("Shop not found for this user.", user_id=user_id)
        return self.store.list_for_shops([shop.id for shop in shops])

    def list_for_buyer(self, buyer_id: UUID) -> List[PlacedTransaction]:
        return self.store.list_for_buyer(buyer_id)


def validate_checkout(request: CheckoutRequest) -> None:
    """Reject request shapes the pricing rules cannot handle."""
    if not request.shop_groups:
        raise ValidationFailedError("Checkout must contain at least one shop.")
    for group in request.shop_groups:
        if not group.items:
            raise ValidationFailedError(
                f"Shop {group.shop_id} has no products.", shop_id=group.shop_id
            )
        seen = set()
        for item in group.items:
            if item.quantity <= 0:
                raise ValidationFailedError(
                    "Quantity must be a positive integer.",
                    shop_id=group.shop_id,
                    product_id=item.product_id,
                )
            if item.product_id in seen:
                raise ValidationFailedError(
                    f"Product listed twice in shop {group.shop_id}.",
                    shop_id=group.shop_id,
                    product_id=item.product_id,
                )
            seen.add(item.product_id)


class LifecycleService:
    """Pay, process and complete individual transactions.

    Each operation checks the current status against the transition table
    before doing anything else and runs inside one atomic scope, so a
    failed debit never leaves the status advanced and vice versa.
    """

    def __init__(
        self,
        catalog: ReferenceDataPort,
        credits: CreditLedgerPort,
        store: TransactionStorePort,
        uow: UnitOfWork,
    ):
        self.catalog = catalog
        self.credits = credits
        self.store = store
        self.uow = uow

    def pay(self, transaction_id: UUID, payment_method_id: UUID) -> StatusRecord:
        """Debit the transaction total and mark it Paid.

        Raises:
            NotFoundError: Unknown transaction, status or payment method.
            AlreadyInTargetStateError: Already Paid.
            InvalidStateError: Not in Not Paid.
            InsufficientCreditError: Credit lower than the transaction total.
        """
        with self.uow.atomic():
            status = self._status(transaction_id)
            require_transition(status.status, TransactionStatus.PAID)
            transaction = self._transaction(transaction_id)

            payment_method = self.catalog.get_payment_method(payment_method_id)
            if payment_method is None:
                raise NotFoundError("Payment method", payment_method_id)
            if payment_method.credit < transaction.total_price:
                raise InsufficientCreditError(payment_method_id)

            self.credits.debit(payment_method_id, transaction.total_price)
            return self._advance(status, TransactionStatus.PAID)

    def process(self, transaction_id: UUID, user_id: UUID) -> StatusRecord:
        """Mark a Paid transaction Processed on behalf of its shop owner.

        Raises:
            UnauthorizedError: ``user_id`` does not own the transaction's shop.
            NotFoundError: Unknown transaction or status.
            InvalidStateError: Not in Paid.
        """
        with self.uow.atomic():
            owned = {shop.id for shop in self.catalog.get_shops_owned_by(user_id)}
            if not owned:
                raise UnauthorizedError("Shop not found for this user.", user_id=user_id)

            transaction = self._transaction(transaction_id)
            if transaction.shop_id not in owned:
                raise UnauthorizedError(
                    "You do not have permission to update this transaction.",
                    user_id=user_id,
                    transaction_id=transaction_id,
                )

            status = self._status(transaction_id)
            require_transition(status.status, TransactionStatus.PROCESSED)
            return self._advance(status, TransactionStatus.PROCESSED)

    def complete(self, transaction_id: UUID) -> StatusRecord:
        """Mark a Processed transaction Completed.

        Raises:
            NotFoundError: Unknown transaction or status.
            InvalidStateError: Not in Processed.
        """
        with self.uow.atomic():
            status = self._status(transaction_id)
            require_transition(status.status, TransactionStatus.COMPLETED)
            self._transaction(transaction_id)
            return self._advance(status, TransactionStatus.COMPLETED)

    def _transaction(self, transaction_id: UUID) -> Transaction:
        transaction = self.store.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def _status(self, transaction_id: UUID) -> StatusRecord:
        status = self.store.get_status(transaction_id)
        if status is None:
            raise NotFoundError("Transaction status", transaction_id)
        return status

    def _advance(self, status: StatusRecord, target: TransactionStatus) -> StatusRecord:
        updated = self.store.advance_status(status.transaction_id, status.status, target)
        if updated is None:
            # another request moved the status after we read it
            latest = self._status(status.transaction_id)
            require_transition(latest.status, target)
            raise InvalidStateError(latest.status, TRANSITIONS[target], target)

        log.info(
            "transaction status changed",
            extra={
                "transaction_id": str(status.transaction_id),
                "from_status": status.status.value,
                "to_status": target.value,
            },
        )
        return updated
