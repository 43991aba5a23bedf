"""Pydantic schemas for checkout.

Request schemas validate the shape of incoming payloads and convert them
into domain requests; read schemas render domain records into JSON-ready
dictionaries for the API.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .domain import (
    CheckoutRequest,
    LineItem,
    PlacedTransaction,
    ShopGroup,
    StatusRecord,
    Transaction,
)


class LineItemIn(BaseModel):
    """Input schema for a single line item.

    Attributes:
        product_id: Product identifier.
        quantity: Positive integer indicating units requested.
    """

    product_id: UUID
    # strict: "2", 2.0 and true are rejected instead of coerced
    quantity: int = Field(gt=0, strict=True)


class ShopGroupIn(BaseModel):
    """Input schema for the part of a checkout that belongs to one shop."""

    shop_id: UUID
    courier_id: UUID
    products: List[LineItemIn] = Field(min_length=1)
    note: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def distinct_products(self) -> "ShopGroupIn":
        """Reject a product listed twice within the same shop.

        Raises:
            ValueError: When two line items share a product id.
        """
        ids = [item.product_id for item in self.products]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate product in shop group")
        return self


class CreateOrderDTO(BaseModel):
    """Schema for a multi-shop checkout.

    Attributes:
        payment_id: Payment method the buyer intends to pay with.
        voucher_id: Optional voucher applied independently to every shop.
        address_id: Shipping address.
        shops: One group per shop, processed in order.
    """

    payment_id: UUID
    voucher_id: Optional[UUID] = None
    address_id: UUID
    shops: List[ShopGroupIn] = Field(min_length=1)

    def to_domain(self, buyer_id: UUID) -> CheckoutRequest:
        return CheckoutRequest(
            buyer_id=buyer_id,
            payment_method_id=self.payment_id,
            address_id=self.address_id,
            voucher_id=self.voucher_id,
            shop_groups=[
                ShopGroup(
                    shop_id=group.shop_id,
                    courier_id=group.courier_id,
                    items=[LineItem(i.product_id, i.quantity) for i in group.products],
                    note=group.note,
                )
                for group in self.shops
            ],
        )


class PayTransactionDTO(BaseModel):
    payment_id: UUID


class LineItemOut(BaseModel):
    product_id: UUID
    quantity: int


class TransactionReadDTO(BaseModel):
    id: UUID
    buyer_id: UUID
    shop_id: UUID
    payment_id: UUID
    voucher_id: Optional[UUID] = None
    courier_id: UUID
    address_id: UUID
    products: List[LineItemOut]
    total_price: Decimal
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, t: Transaction) -> "TransactionReadDTO":
        return cls(
            id=t.id,
            buyer_id=t.buyer_id,
            shop_id=t.shop_id,
            payment_id=t.payment_method_id,
            voucher_id=t.voucher_id,
            courier_id=t.courier_id,
            address_id=t.address_id,
            products=[LineItemOut(product_id=i.product_id, quantity=i.quantity) for i in t.items],
            total_price=t.total_price,
            note=t.note,
            created_at=t.created_at,
            updated_at=t.updated_at,
        )


class StatusReadDTO(BaseModel):
    id: UUID
    transaction_id: UUID
    shop_id: UUID
    status: str
    updated_at: datetime

    @classmethod
    def from_domain(cls, s: StatusRecord) -> "StatusReadDTO":
        return cls(
            id=s.id,
            transaction_id=s.transaction_id,
            shop_id=s.shop_id,
            status=s.status.value,
            updated_at=s.updated_at,
        )


def dump_status(status: StatusRecord) -> dict:
    return StatusReadDTO.from_domain(status).model_dump(mode="json")


def dump_placed(placed: PlacedTransaction) -> dict:
    """Render a transaction and its status as ``{"transaction", "status"}``."""
    return {
        "transaction": TransactionReadDTO.from_domain(placed.transaction).model_dump(mode="json"),
        "status": dump_status(placed.status),
    }


class CourierRefDTO(BaseModel):
    id: UUID
    name: str
    cost: Decimal


class VoucherRefDTO(BaseModel):
    id: UUID
    name: str
    discount: Decimal


class PaymentRefDTO(BaseModel):
    id: UUID
    name: str


class TransactionListDTO(TransactionReadDTO):
    """Listing row: the transaction plus its referenced records.

    Attributes:
        courier: Courier name and cost.
        voucher: Voucher name and discount; ``None`` when none was used.
        payment: Payment method name.
    """

    courier: Optional[CourierRefDTO] = None
    voucher: Optional[VoucherRefDTO] = None
    payment: Optional[PaymentRefDTO] = None

    @classmethod
    def from_placed(cls, placed: PlacedTransaction) -> "TransactionListDTO":
        base = TransactionReadDTO.from_domain(placed.transaction).model_dump()
        c, v, p = placed.courier, placed.voucher, placed.payment_method
        return cls(
            **base,
            courier=CourierRefDTO(id=c.id, name=c.name, cost=c.cost) if c else None,
            voucher=VoucherRefDTO(id=v.id, name=v.name, discount=v.discount) if v else None,
            payment=PaymentRefDTO(id=p.id, name=p.name) if p else None,
        )


def dump_listed(placed: PlacedTransaction) -> dict:
    """Render a listing row as ``{"transaction", "status"}`` with nested references."""
    return {
        "transaction": TransactionListDTO.from_placed(placed).model_dump(mode="json"),
        "status": dump_status(placed.status),
    }
