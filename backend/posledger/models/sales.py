from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..time_utils import to_utc_z
from .base import SoftDeleteMixin, as_int, parse_datetime, soft_delete_kwargs


DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED = "FIXED"


@dataclass(frozen=True)
class Discount:
    """
    Whole-invoice discount.

    PERCENTAGE values are basis points (1000 = 10%); FIXED values are cents.
    The amount is capped at the subtotal so net totals never go negative.
    """

    kind: str = DISCOUNT_PERCENTAGE
    value: int = 0

    def amount_cents(self, subtotal_cents: int) -> int:
        if self.kind == DISCOUNT_PERCENTAGE:
            # nearest-cent rounding (half-up)
            amount = (subtotal_cents * self.value + 5000) // 10000
        else:
            amount = self.value
        return max(0, min(amount, subtotal_cents))

    def to_dict(self) -> dict:
        return {"kind": self.kind, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict | None) -> "Discount":
        if not data:
            return cls()
        kind = str(data.get("kind") or DISCOUNT_PERCENTAGE).upper()
        if kind not in (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED):
            raise ValueError(f"unknown discount kind {kind!r}")
        return cls(kind=kind, value=as_int(data.get("value")))


@dataclass(frozen=True)
class SaleLine:
    item_id: str
    name: str
    quantity: int
    unit_price_cents: int
    # WAC at the moment of sale; later receipts never rewrite it
    unit_cost_cents_at_sale: int

    @property
    def subtotal_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents_at_sale": self.unit_cost_cents_at_sale,
            "subtotal_cents": self.subtotal_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleLine":
        return cls(
            item_id=str(data["item_id"]),
            name=data.get("name") or "",
            quantity=as_int(data.get("quantity")),
            unit_price_cents=as_int(data.get("unit_price_cents")),
            unit_cost_cents_at_sale=as_int(data.get("unit_cost_cents_at_sale")),
        )


@dataclass
class SaleRecord(SoftDeleteMixin):
    """Sale invoice. Totals are fixed at creation and never recomputed."""

    id: str
    lines: list[SaleLine]
    subtotal_cents: int
    discount: Discount
    net_total_cents: int
    created_at: datetime
    customer_name: str | None = None
    customer_phone: str | None = None
    notes: str | None = None
    created_by: str | None = None
    # set when deleting the sale put its unreturned units back on hand
    stock_released: bool = False
    seq: int = 0
    is_deleted: bool = False
    deletion_reason: str | None = None
    deleted_at: datetime | None = None

    def line_for(self, item_id: str) -> SaleLine | None:
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None

    @property
    def discount_cents(self) -> int:
        return self.subtotal_cents - self.net_total_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount": self.discount.to_dict(),
            "discount_cents": self.discount_cents,
            "net_total_cents": self.net_total_cents,
            "created_at": to_utc_z(self.created_at),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "created_by": self.created_by,
            "stock_released": self.stock_released,
            "seq": self.seq,
            **self._soft_delete_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleRecord":
        return cls(
            id=str(data["id"]),
            lines=[SaleLine.from_dict(line) for line in data.get("lines") or []],
            subtotal_cents=as_int(data.get("subtotal_cents")),
            discount=Discount.from_dict(data.get("discount")),
            net_total_cents=as_int(data.get("net_total_cents")),
            created_at=parse_datetime(data.get("created_at")),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
            stock_released=bool(data.get("stock_released", False)),
            seq=as_int(data.get("seq")),
            **soft_delete_kwargs(data),
        )


@dataclass(frozen=True)
class SaleReturnLine:
    item_id: str
    name: str
    requested_quantity: int
    quantity: int
    refund_cents: int
    unit_cost_cents_at_sale: int

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "requested_quantity": self.requested_quantity,
            "quantity": self.quantity,
            "refund_cents": self.refund_cents,
            "unit_cost_cents_at_sale": self.unit_cost_cents_at_sale,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleReturnLine":
        quantity = as_int(data.get("quantity"))
        return cls(
            item_id=str(data["item_id"]),
            name=data.get("name") or "",
            requested_quantity=as_int(data.get("requested_quantity"), quantity),
            quantity=quantity,
            refund_cents=as_int(data.get("refund_cents")),
            unit_cost_cents_at_sale=as_int(data.get("unit_cost_cents_at_sale")),
        )


@dataclass
class SaleReturnRecord(SoftDeleteMixin):
    id: str
    sale_id: str
    lines: list[SaleReturnLine]
    total_refund_cents: int
    created_at: datetime
    created_by: str | None = None
    seq: int = 0
    is_deleted: bool = False
    deletion_reason: str | None = None
    deleted_at: datetime | None = None

    def quantity_for(self, item_id: str) -> int:
        return sum(line.quantity for line in self.lines if line.item_id == item_id)

    @property
    def cost_of_goods_returned_cents(self) -> int:
        return sum(line.quantity * line.unit_cost_cents_at_sale for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "lines": [line.to_dict() for line in self.lines],
            "total_refund_cents": self.total_refund_cents,
            "cost_of_goods_returned_cents": self.cost_of_goods_returned_cents,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "seq": self.seq,
            **self._soft_delete_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleReturnRecord":
        return cls(
            id=str(data["id"]),
            sale_id=str(data["sale_id"]),
            lines=[SaleReturnLine.from_dict(line) for line in data.get("lines") or []],
            total_refund_cents=as_int(data.get("total_refund_cents")),
            created_at=parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
            seq=as_int(data.get("seq")),
            **soft_delete_kwargs(data),
        )
