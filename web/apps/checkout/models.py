"""Django ORM models (persistence layer) for checkout.

Reference records (products, vouchers, couriers, payment methods, shops)
are read by the reference data repository and mutated only through the
conditional ledger updates in ``repository``. Domain logic lives in
``domain``, ``pricing`` and ``services``.
"""

import uuid

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from .domain import TransactionStatus


class Shop(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    # identity comes from the auth gateway, so no FK to a user table
    owner_id = models.UUIDField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(0)])
    stock = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class Voucher(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)
    expires_at = models.DateTimeField()
    min_purchase = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    discount = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    quantity = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return self.name or str(self.id)


class Courier(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, blank=True, default="")
    cost = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(0)])

    def __str__(self) -> str:
        return self.name or str(self.id)


class PaymentMethod(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, blank=True, default="")
    credit = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    def __str__(self) -> str:
        return self.name or str(self.id)


class TransactionModel(models.Model):
    """One shop's share of a checkout. ``total_price`` never changes."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    buyer_id = models.UUIDField(db_index=True)
    shop = models.ForeignKey(Shop, on_delete=models.PROTECT, related_name="transactions")
    payment_method = models.ForeignKey(PaymentMethod, on_delete=models.PROTECT)
    voucher = models.ForeignKey(Voucher, on_delete=models.PROTECT, null=True, blank=True)
    courier = models.ForeignKey(Courier, on_delete=models.PROTECT)
    address_id = models.UUIDField()
    # [{"product_id": "...", "quantity": 2}, ...] copied from the request
    products = models.JSONField(default=list)
    total_price = models.DecimalField(max_digits=14, decimal_places=2)
    note = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "transactions"
        ordering = ["-created_at"]


class TransactionStatusModel(models.Model):
    class Status(models.TextChoices):
        NOT_PAID = TransactionStatus.NOT_PAID.value
        PAID = TransactionStatus.PAID.value
        PROCESSED = TransactionStatus.PROCESSED.value
        COMPLETED = TransactionStatus.COMPLETED.value

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transaction = models.OneToOneField(
        TransactionModel, on_delete=models.CASCADE, related_name="status_record"
    )
    # denormalized for owner-scoped queries
    shop = models.ForeignKey(Shop, on_delete=models.PROTECT, related_name="transaction_statuses")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.NOT_PAID)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "transaction_statuses"


class IdempotencyKey(models.Model):
    """Stored response of a checkout submitted with an ``Idempotency-Key``."""

    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
