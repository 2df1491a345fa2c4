# Overview: Sales engine; immutable sale records with per-line cost snapshots.

"""
Sales Engine

DESIGN PRINCIPLES:
- A sale captures the unit price charged and the item's WAC at the moment
  of sale. Later receipts move the WAC but never the sale's cost of goods.
- Subtotal and net total are computed once at creation and stored; they
  are never recomputed from current item prices.
- Stock is deducted per line and clamps at zero; the movements are
  returned so callers can see any truncation.
- A sale is immutable apart from soft-delete. Deleting may release the
  units not yet returned back into stock; restoring takes them out again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models import Discount, SaleLine, SaleRecord, StockMovement
from ..models.sales import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, require_text
from .inventory_service import StockLedger
from .record_store import COLLECTION_SALES
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleResult:
    sale: SaleRecord
    movements: list[StockMovement]

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "stock_movements": [m.to_dict() for m in self.movements],
        }


def validate_discount(discount: Discount) -> Discount:
    if discount.kind not in (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED):
        raise ValidationError(f"Unknown discount kind {discount.kind!r}")
    if discount.value < 0:
        raise ValidationError("Discount cannot be negative")
    if discount.kind == DISCOUNT_PERCENTAGE and discount.value > 10000:
        raise ValidationError("Percentage discount cannot exceed 100%")
    return discount


class SalesEngine:
    def __init__(self, repo: LedgerRepository, stock: StockLedger):
        self.repo = repo
        self.stock = stock

    def _build_lines(self, lines: list[dict]) -> list[SaleLine]:
        if not lines:
            raise ValidationError("Cannot create a sale with no lines")

        # Same item twice in a cart is one line with the summed quantity
        merged: dict[str, dict] = {}
        for raw in lines:
            item_id = str(raw.get("item_id") or "")
            quantity = raw.get("quantity")
            if not item_id:
                raise ValidationError("item_id is required on every line")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationError(f"Quantity for item {item_id} must be a positive integer")

            item = self.repo.get_item(item_id)
            if item.is_deleted:
                raise ConflictError(f"Item {item_id} is deleted")

            price = raw.get("unit_price_cents")
            if price is None:
                price = item.retail_price_cents
            if price < 0:
                raise ValidationError(f"Price for item {item_id} cannot be negative")

            if item_id in merged:
                if merged[item_id]["unit_price_cents"] != price:
                    raise ValidationError(f"Item {item_id} appears twice with different prices")
                merged[item_id]["quantity"] += quantity
            else:
                merged[item_id] = {"quantity": quantity, "unit_price_cents": price}

        return [
            SaleLine(
                item_id=item_id,
                name=self.repo.items[item_id].name,
                quantity=entry["quantity"],
                unit_price_cents=entry["unit_price_cents"],
                unit_cost_cents_at_sale=self.repo.items[item_id].unit_cost_cents,
            )
            for item_id, entry in merged.items()
        ]

    def create_sale(
        self,
        *,
        lines: list[dict],
        discount: Discount | None = None,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> SaleResult:
        discount = validate_discount(discount or Discount())
        sale_lines = self._build_lines(lines)

        subtotal = sum(line.subtotal_cents for line in sale_lines)
        net_total = subtotal - discount.amount_cents(subtotal)

        sale_id, seq = self.repo.allocate(COLLECTION_SALES)
        sale = SaleRecord(
            id=sale_id,
            lines=sale_lines,
            subtotal_cents=subtotal,
            discount=discount,
            net_total_cents=net_total,
            created_at=utcnow(),
            customer_name=customer_name,
            customer_phone=customer_phone,
            notes=notes,
            created_by=created_by,
            seq=seq,
        )
        self.repo.sales[sale.id] = sale

        movements = [self.stock.deduct(line.item_id, line.quantity) for line in sale_lines]
        logger.info("Sale %s created: subtotal=%d net=%d", sale.id, subtotal, net_total)
        return SaleResult(sale=sale, movements=movements)

    def outstanding_quantities(self, sale: SaleRecord) -> dict[str, int]:
        """Units per item still with the customer (sold minus actively returned)."""
        outstanding = {line.item_id: line.quantity for line in sale.lines}
        for record in self.repo.active_returns_for_sale(sale.id):
            for line in record.lines:
                if line.item_id in outstanding:
                    outstanding[line.item_id] -= line.quantity
        return outstanding

    def delete_sale(self, sale_id: str, reason: str, *, restore_stock: bool = True) -> SaleRecord:
        reason = require_text("reason", reason)
        sale = self.repo.get_sale(sale_id)
        if sale.is_deleted:
            raise ConflictError(f"Sale {sale_id} is already deleted")

        if restore_stock:
            for item_id, qty in self.outstanding_quantities(sale).items():
                if qty > 0 and item_id in self.repo.items:
                    self.stock.restock(item_id, qty)
        sale.stock_released = restore_stock
        sale.mark_deleted(reason)
        return sale

    def restore_sale(self, sale_id: str) -> SaleResult:
        sale = self.repo.get_sale(sale_id)
        if not sale.is_deleted:
            raise ConflictError(f"Sale {sale_id} is not deleted")

        movements = []
        if sale.stock_released:
            for item_id, qty in self.outstanding_quantities(sale).items():
                if qty > 0 and item_id in self.repo.items:
                    movements.append(self.stock.deduct(item_id, qty))
        sale.stock_released = False
        sale.mark_restored()
        return SaleResult(sale=sale, movements=movements)

    def purge_sale(self, sale_id: str) -> list[str]:
        """
        Remove a soft-deleted sale for good, together with every return
        recorded against it. Returns the purged return ids.
        """
        sale = self.repo.get_sale(sale_id)
        if not sale.is_deleted:
            raise ConflictError(f"Sale {sale_id} is not deleted; delete it before purging")
        return_ids = [r.id for r in self.repo.sale_returns.values() if r.sale_id == sale.id]
        for return_id in return_ids:
            del self.repo.sale_returns[return_id]
        del self.repo.sales[sale.id]
        logger.info("Sale %s purged with %d returns", sale.id, len(return_ids))
        return return_ids
