from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..time_utils import to_utc_z
from .base import SoftDeleteMixin, as_int, parse_datetime, soft_delete_kwargs


PAYMENT_STATUS_CASH = "CASH"
PAYMENT_STATUS_CREDIT = "CREDIT"

PAYMENT_KIND_PAYMENT = "PAYMENT"
PAYMENT_KIND_REFUND = "REFUND"


@dataclass(frozen=True)
class PurchaseLine:
    item_id: str
    name: str
    quantity: int
    cost_price_cents: int
    retail_price_cents: int | None = None
    notes: str | None = None

    @property
    def subtotal_cents(self) -> int:
        return self.quantity * self.cost_price_cents

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseLine":
        retail = data.get("retail_price_cents")
        return cls(
            item_id=str(data["item_id"]),
            name=data.get("name") or "",
            quantity=as_int(data.get("quantity")),
            cost_price_cents=as_int(data.get("cost_price_cents")),
            retail_price_cents=None if retail is None else as_int(retail),
            notes=data.get("notes"),
        )


@dataclass
class PurchaseRecord(SoftDeleteMixin):
    """
    Receipt of stock from a supplier.

    paid_cents, returned_cents and remaining_cents are derived by the
    supplier ledger from payments and purchase returns; they are stored so
    that exports carry the receipt's balance.

    INVARIANT: remaining == max(0, total - returned - paid)
    """

    id: str
    supplier_id: str
    lines: list[PurchaseLine]
    total_cents: int
    initial_paid_cents: int
    created_at: datetime
    paid_cents: int = 0
    returned_cents: int = 0
    remaining_cents: int = 0
    supplier_invoice_number: str | None = None
    created_by: str | None = None
    seq: int = 0
    is_deleted: bool = False
    deletion_reason: str | None = None
    deleted_at: datetime | None = None

    @property
    def payment_status(self) -> str:
        return PAYMENT_STATUS_CASH if self.initial_paid_cents >= self.total_cents else PAYMENT_STATUS_CREDIT

    def line_for(self, item_id: str) -> PurchaseLine | None:
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_invoice_number": self.supplier_invoice_number,
            "lines": [line.to_dict() for line in self.lines],
            "total_cents": self.total_cents,
            "initial_paid_cents": self.initial_paid_cents,
            "paid_cents": self.paid_cents,
            "returned_cents": self.returned_cents,
            "remaining_cents": self.remaining_cents,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "seq": self.seq,
            **self._soft_delete_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseRecord":
        total = as_int(data.get("total_cents"))
        initial_paid = as_int(data.get("initial_paid_cents"), as_int(data.get("paid_cents")))
        return cls(
            id=str(data["id"]),
            supplier_id=str(data["supplier_id"]),
            supplier_invoice_number=data.get("supplier_invoice_number"),
            lines=[PurchaseLine.from_dict(line) for line in data.get("lines") or []],
            total_cents=total,
            initial_paid_cents=initial_paid,
            paid_cents=as_int(data.get("paid_cents"), initial_paid),
            returned_cents=as_int(data.get("returned_cents")),
            remaining_cents=as_int(data.get("remaining_cents"), max(0, total - initial_paid)),
            created_at=parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
            seq=as_int(data.get("seq")),
            **soft_delete_kwargs(data),
        )


@dataclass(frozen=True)
class PurchaseReturnLine:
    item_id: str
    name: str
    purchased_quantity: int
    requested_quantity: int
    quantity: int
    cost_price_cents: int

    @property
    def value_cents(self) -> int:
        return self.quantity * self.cost_price_cents

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "purchased_quantity": self.purchased_quantity,
            "requested_quantity": self.requested_quantity,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "value_cents": self.value_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseReturnLine":
        quantity = as_int(data.get("quantity"))
        return cls(
            item_id=str(data["item_id"]),
            name=data.get("name") or "",
            purchased_quantity=as_int(data.get("purchased_quantity"), quantity),
            requested_quantity=as_int(data.get("requested_quantity"), quantity),
            quantity=quantity,
            cost_price_cents=as_int(data.get("cost_price_cents")),
        )


@dataclass
class PurchaseReturnRecord:
    """
    Stock sent back to a supplier against one receipt.

    debt_reduction_cents and cash_owed_cents are the split computed when the
    return was registered. A restored receipt marks its return reversed
    rather than deleting it, and balances are re-derived without it.
    """

    id: str
    purchase_id: str
    supplier_id: str
    reason: str
    lines: list[PurchaseReturnLine]
    total_value_cents: int
    debt_reduction_cents: int
    cash_owed_cents: int
    created_at: datetime
    created_by: str | None = None
    seq: int = 0
    is_reversed: bool = False
    reversed_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "supplier_id": self.supplier_id,
            "reason": self.reason,
            "lines": [line.to_dict() for line in self.lines],
            "total_value_cents": self.total_value_cents,
            "debt_reduction_cents": self.debt_reduction_cents,
            "cash_owed_cents": self.cash_owed_cents,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "seq": self.seq,
            "is_reversed": self.is_reversed,
            "reversed_at": to_utc_z(self.reversed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseReturnRecord":
        return cls(
            id=str(data["id"]),
            purchase_id=str(data["purchase_id"]),
            supplier_id=str(data["supplier_id"]),
            reason=data.get("reason") or "",
            lines=[PurchaseReturnLine.from_dict(line) for line in data.get("lines") or []],
            total_value_cents=as_int(data.get("total_value_cents")),
            debt_reduction_cents=as_int(data.get("debt_reduction_cents")),
            cash_owed_cents=as_int(data.get("cash_owed_cents")),
            created_at=parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
            seq=as_int(data.get("seq")),
            is_reversed=bool(data.get("is_reversed", False)),
            reversed_at=parse_datetime(data.get("reversed_at")),
        )


@dataclass
class Supplier(SoftDeleteMixin):
    """
    Supplier with aggregate balances.

    credit_cents is cash the supplier owes the store: returned value or
    payments beyond what was outstanding on the receipt.
    """

    id: str
    name: str
    phone: str | None = None
    tax_number: str | None = None
    total_supplied_cents: int = 0
    total_paid_cents: int = 0
    total_debt_cents: int = 0
    credit_cents: int = 0
    seq: int = 0
    is_deleted: bool = False
    deletion_reason: str | None = None
    deleted_at: datetime | None = None

    def __repr__(self) -> str:
        return f"<Supplier id={self.id!r} name={self.name!r} debt={self.total_debt_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "tax_number": self.tax_number,
            "total_supplied_cents": self.total_supplied_cents,
            "total_paid_cents": self.total_paid_cents,
            "total_debt_cents": self.total_debt_cents,
            "credit_cents": self.credit_cents,
            "seq": self.seq,
            **self._soft_delete_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Supplier":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            phone=data.get("phone"),
            tax_number=data.get("tax_number"),
            total_supplied_cents=as_int(data.get("total_supplied_cents")),
            total_paid_cents=as_int(data.get("total_paid_cents")),
            total_debt_cents=as_int(data.get("total_debt_cents")),
            credit_cents=as_int(data.get("credit_cents")),
            seq=as_int(data.get("seq")),
            **soft_delete_kwargs(data),
        )


@dataclass(frozen=True)
class SupplierPayment:
    """
    Money moved between the store and a supplier. Never mutated.

    PAYMENT: store pays a receipt. REFUND: supplier pays credit back.
    """

    id: str
    supplier_id: str
    amount_cents: int
    created_at: datetime
    kind: str = PAYMENT_KIND_PAYMENT
    purchase_id: str | None = None
    notes: str | None = None
    created_by: str | None = None
    seq: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "purchase_id": self.purchase_id,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "seq": self.seq,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SupplierPayment":
        kind = str(data.get("kind") or PAYMENT_KIND_PAYMENT).upper()
        if kind not in (PAYMENT_KIND_PAYMENT, PAYMENT_KIND_REFUND):
            raise ValueError(f"unknown payment kind {kind!r}")
        purchase_id = data.get("purchase_id")
        return cls(
            id=str(data["id"]),
            supplier_id=str(data["supplier_id"]),
            purchase_id=None if purchase_id is None else str(purchase_id),
            kind=kind,
            amount_cents=as_int(data.get("amount_cents")),
            notes=data.get("notes"),
            created_at=parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
            seq=as_int(data.get("seq")),
        )
