"""Unit tests for the transaction lifecycle state machine.

The transition table is checked directly, then pay/process/complete are
driven through ``LifecycleService`` against the in-memory adapters.
"""

import uuid
from dataclasses import replace
from decimal import Decimal

import pytest

from apps.checkout.domain import (
    CheckoutRequest,
    LineItem,
    ShopGroup,
    TransactionStatus,
    require_transition,
)
from apps.checkout.errors import (
    AlreadyInTargetStateError,
    InsufficientCreditError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)

S = TransactionStatus


@pytest.fixture
def txn(order_service, memory):
    """A Not Paid transaction of 2xP in Shop A (total 25000)."""
    placed = order_service.create_order(
        CheckoutRequest(
            buyer_id=uuid.uuid4(),
            payment_method_id=memory.wallet.id,
            address_id=uuid.uuid4(),
            shop_groups=[
                ShopGroup(memory.shop.id, memory.courier.id, [LineItem(memory.product.id, 2)])
            ],
        )
    )
    return placed[0].transaction


@pytest.mark.parametrize(
    "current,target",
    [(S.NOT_PAID, S.PAID), (S.PAID, S.PROCESSED), (S.PROCESSED, S.COMPLETED)],
)
def test_forward_transitions_allowed(current, target):
    require_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.NOT_PAID, S.PROCESSED),
        (S.NOT_PAID, S.COMPLETED),
        (S.PAID, S.COMPLETED),
        (S.PROCESSED, S.PAID),
        (S.COMPLETED, S.PAID),
        (S.COMPLETED, S.PROCESSED),
    ],
)
def test_skipping_or_going_back_is_invalid(current, target):
    with pytest.raises(InvalidStateError) as e:
        require_transition(current, target)
    assert not isinstance(e.value, AlreadyInTargetStateError)
    assert e.value.context["required"] == TRANSITIONS_REQUIRED[target]


TRANSITIONS_REQUIRED = {S.PAID: "Not Paid", S.PROCESSED: "Paid", S.COMPLETED: "Processed"}


@pytest.mark.parametrize("state", [S.PAID, S.PROCESSED, S.COMPLETED])
def test_same_state_is_already_in_target(state):
    with pytest.raises(AlreadyInTargetStateError) as e:
        require_transition(state, state)
    assert str(e.value) == "ALREADY_IN_TARGET_STATE"


def test_full_lifecycle(lifecycle, memory, txn, seller_id):
    assert lifecycle.pay(txn.id, memory.wallet.id).status == S.PAID
    assert memory.store.payment_methods[memory.wallet.id].credit == Decimal("75000.00")
    assert lifecycle.process(txn.id, seller_id).status == S.PROCESSED
    assert lifecycle.complete(txn.id).status == S.COMPLETED


def test_pay_twice_debits_once(lifecycle, memory, txn):
    lifecycle.pay(txn.id, memory.wallet.id)

    with pytest.raises(AlreadyInTargetStateError):
        lifecycle.pay(txn.id, memory.wallet.id)

    assert memory.store.payment_methods[memory.wallet.id].credit == Decimal("75000.00")


def test_pay_with_insufficient_credit_changes_nothing(lifecycle, memory, txn):
    poor = memory.store.add(replace(memory.wallet, id=uuid.uuid4(), credit=Decimal("24999.99")))

    with pytest.raises(InsufficientCreditError):
        lifecycle.pay(txn.id, poor.id)

    assert memory.store.payment_methods[poor.id].credit == Decimal("24999.99")
    assert memory.store.statuses[txn.id].status == S.NOT_PAID


def test_pay_unknown_payment_method(lifecycle, txn):
    with pytest.raises(NotFoundError):
        lifecycle.pay(txn.id, uuid.uuid4())


def test_operations_on_unknown_transaction(lifecycle, memory, seller_id):
    missing = uuid.uuid4()
    with pytest.raises(NotFoundError):
        lifecycle.pay(missing, memory.wallet.id)
    with pytest.raises(NotFoundError):
        lifecycle.process(missing, seller_id)
    with pytest.raises(NotFoundError):
        lifecycle.complete(missing)


def test_process_requires_paid(lifecycle, txn, seller_id):
    with pytest.raises(InvalidStateError):
        lifecycle.process(txn.id, seller_id)


def test_complete_requires_processed(lifecycle, memory, txn):
    with pytest.raises(InvalidStateError):
        lifecycle.complete(txn.id)
    assert memory.store.statuses[txn.id].status == S.NOT_PAID

    lifecycle.pay(txn.id, memory.wallet.id)
    with pytest.raises(InvalidStateError):
        lifecycle.complete(txn.id)


def test_process_by_non_owner_is_unauthorized(lifecycle, memory, txn):
    lifecycle.pay(txn.id, memory.wallet.id)

    with pytest.raises(UnauthorizedError):
        lifecycle.process(txn.id, uuid.uuid4())
    with pytest.raises(UnauthorizedError):
        lifecycle.process(txn.id, memory.other_shop.owner_id)

    assert memory.store.statuses[txn.id].status == S.PAID


def test_failed_debit_rolls_back_status(lifecycle, memory, txn, monkeypatch):
    """A debit that loses a race leaves the transaction Not Paid."""

    def drained(payment_method_id, amount):
        raise InsufficientCreditError(payment_method_id)

    monkeypatch.setattr(memory.store, "debit", drained)

    with pytest.raises(InsufficientCreditError):
        lifecycle.pay(txn.id, memory.wallet.id)
    assert memory.store.statuses[txn.id].status == S.NOT_PAID


def test_lost_status_race_is_invalid_state(lifecycle, memory, txn):
    """If the status moves between read and write, the transition fails."""
    original = memory.store.advance_status

    def racing(transaction_id, current, target):
        original(transaction_id, current, target)
        return None

    memory.store.advance_status = racing

    with pytest.raises(InvalidStateError):
        lifecycle.pay(txn.id, memory.wallet.id)
    assert memory.store.payment_methods[memory.wallet.id].credit == Decimal("100000.00")
