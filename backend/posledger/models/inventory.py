from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from fractions import Fraction

from .base import SoftDeleteMixin, as_int, soft_delete_kwargs


def round_half_up(value: Fraction) -> int:
    """Nearest whole cent, halves rounded up (values are never negative here)."""
    return int((value * 2 + 1) // 2)


@dataclass
class StockItem(SoftDeleteMixin):
    """
    Stocked item with quantity on hand and weighted-average cost.

    cost_basis holds the exact average unit cost; unit_cost_cents is the
    rounded WAC shown to callers and snapshotted on sales. Keeping the exact
    value means a run of receipts always lands on sum(qty*cost)/sum(qty),
    never on a value that drifted through intermediate rounding.
    """

    id: str
    code: str
    name: str
    quantity: int = 0
    cost_basis: Fraction = field(default_factory=Fraction)
    retail_price_cents: int = 0
    description: str | None = None
    seq: int = 0
    is_deleted: bool = False
    deletion_reason: str | None = None
    deleted_at: datetime | None = None

    @property
    def unit_cost_cents(self) -> int:
        return round_half_up(self.cost_basis)

    @property
    def stock_value_cents(self) -> int:
        return round_half_up(self.cost_basis * self.quantity)

    def __repr__(self) -> str:
        return f"<StockItem id={self.id!r} code={self.code!r} qty={self.quantity} wac={self.unit_cost_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "cost_basis": f"{self.cost_basis.numerator}/{self.cost_basis.denominator}",
            "retail_price_cents": self.retail_price_cents,
            "stock_value_cents": self.stock_value_cents,
            "seq": self.seq,
            **self._soft_delete_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StockItem":
        basis = data.get("cost_basis")
        if basis:
            cost_basis = Fraction(str(basis))
        else:
            cost_basis = Fraction(as_int(data.get("unit_cost_cents")))
        return cls(
            id=str(data["id"]),
            code=str(data.get("code") or data["id"]),
            name=data.get("name") or "",
            description=data.get("description"),
            quantity=max(0, as_int(data.get("quantity"))),
            cost_basis=cost_basis,
            retail_price_cents=as_int(data.get("retail_price_cents")),
            seq=as_int(data.get("seq")),
            **soft_delete_kwargs(data),
        )


@dataclass(frozen=True)
class StockMovement:
    """Outcome of a quantity change: what was asked for and what was applied."""

    item_id: str
    requested: int
    applied: int
    quantity_after: int

    @property
    def truncated(self) -> bool:
        return self.applied < self.requested

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "requested": self.requested,
            "applied": self.applied,
            "quantity_after": self.quantity_after,
            "truncated": self.truncated,
        }
