# Overview: Purchases from suppliers and returns of purchased stock.

"""
Purchase Processing

WHY: Receiving stock is the only thing that changes an item's cost, and
every receipt lands on a supplier's ledger. This module does the stock side
and then lets the supplier ledger re-derive balances.

PURCHASE RETURN:
- A return names a receipt and a quantity per purchased item, plus a
  mandatory reason.
- Each line is clamped to min(requested, purchased on that receipt, on hand
  now). The result carries both the requested and the applied quantity.
- Value is applied quantity times the receipt's cost price. Up to the
  receipt's outstanding balance it reduces debt; the rest is cash the
  supplier owes back.
- The receipt is soft-deleted with the reason. Restoring it reverses the
  return (stock comes back, the return stops counting) instead of writing
  the balances back by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models import PurchaseLine, PurchaseRecord, PurchaseReturnLine, PurchaseReturnRecord, StockMovement
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, require_text
from .inventory_service import StockLedger
from .record_store import COLLECTION_PURCHASE_RETURNS, COLLECTION_PURCHASES
from .repository import LedgerRepository
from .supplier_service import SupplierLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseResult:
    purchase: PurchaseRecord
    created_item_ids: list[str]

    def to_dict(self) -> dict:
        return {
            "purchase": self.purchase.to_dict(),
            "created_item_ids": list(self.created_item_ids),
        }


@dataclass(frozen=True)
class PurchaseReturnResult:
    record: PurchaseReturnRecord
    movements: list[StockMovement]

    @property
    def truncated(self) -> bool:
        return any(line.quantity < line.requested_quantity for line in self.record.lines)

    def to_dict(self) -> dict:
        return {
            "return": self.record.to_dict(),
            "stock_movements": [m.to_dict() for m in self.movements],
            "truncated": self.truncated,
        }


def _positive_int(field: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def _non_negative_int(field: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return value


class PurchaseEngine:
    def __init__(self, repo: LedgerRepository, stock: StockLedger, suppliers: SupplierLedger):
        self.repo = repo
        self.stock = stock
        self.suppliers = suppliers

    def _check_lines(self, lines: list[dict]) -> list[dict]:
        """
        Validate raw lines before anything is mutated.

        A line names an existing item_id, or gives a name for an item that
        is created by this purchase. Repeated items merge when their cost
        matches.
        """
        if not lines:
            raise ValidationError("Cannot create a purchase with no lines")

        checked: list[dict] = []
        by_item: dict[str, dict] = {}
        for index, raw in enumerate(lines):
            label = f"lines[{index}]"
            quantity = _positive_int(f"{label}.quantity", raw.get("quantity"))
            cost = _non_negative_int(f"{label}.cost_price_cents", raw.get("cost_price_cents"))
            retail = raw.get("retail_price_cents")
            if retail is not None:
                retail = _non_negative_int(f"{label}.retail_price_cents", retail)

            item_id = raw.get("item_id")
            if item_id:
                item_id = str(item_id)
                item = self.repo.get_item(item_id)
                if item.is_deleted:
                    raise ConflictError(f"Item {item_id} is deleted")
                if item_id in by_item:
                    entry = by_item[item_id]
                    if entry["cost_price_cents"] != cost:
                        raise ValidationError(f"Item {item_id} appears twice with different costs")
                    entry["quantity"] += quantity
                    if retail is not None:
                        entry["retail_price_cents"] = retail
                    continue
                entry = {"item_id": item_id, "name": item.name}
                by_item[item_id] = entry
            else:
                entry = {"item_id": None, "name": require_text(f"{label}.name", raw.get("name"))}

            entry.update(
                quantity=quantity,
                cost_price_cents=cost,
                retail_price_cents=retail,
                code=raw.get("code"),
                notes=raw.get("notes"),
            )
            checked.append(entry)
        return checked

    def create_purchase(
        self,
        *,
        supplier_id: str,
        lines: list[dict],
        paid_cents: int = 0,
        supplier_invoice_number: str | None = None,
        created_by: str | None = None,
    ) -> PurchaseResult:
        supplier = self.suppliers.get_active_supplier(supplier_id)
        checked = self._check_lines(lines)
        total = sum(entry["quantity"] * entry["cost_price_cents"] for entry in checked)
        _non_negative_int("paid_cents", paid_cents)
        if paid_cents > total:
            raise ValidationError(f"Paid amount {paid_cents} exceeds purchase total {total}")

        created: list[str] = []
        purchase_lines = []
        for entry in checked:
            if entry["item_id"] is None:
                item = self.stock.create_item(
                    name=entry["name"],
                    retail_price_cents=entry["retail_price_cents"] or 0,
                    unit_cost_cents=entry["cost_price_cents"],
                    code=entry["code"],
                )
                entry["item_id"] = item.id
                created.append(item.id)
            self.stock.receive(
                entry["item_id"],
                entry["quantity"],
                entry["cost_price_cents"],
                retail_price_cents=entry["retail_price_cents"],
            )
            purchase_lines.append(PurchaseLine(
                item_id=entry["item_id"],
                name=entry["name"],
                quantity=entry["quantity"],
                cost_price_cents=entry["cost_price_cents"],
                retail_price_cents=entry["retail_price_cents"],
                notes=entry["notes"],
            ))

        purchase_id, seq = self.repo.allocate(COLLECTION_PURCHASES)
        purchase = PurchaseRecord(
            id=purchase_id,
            supplier_id=supplier.id,
            supplier_invoice_number=supplier_invoice_number,
            lines=purchase_lines,
            total_cents=total,
            initial_paid_cents=paid_cents,
            paid_cents=paid_cents,
            remaining_cents=total - paid_cents,
            created_at=utcnow(),
            created_by=created_by,
            seq=seq,
        )
        self.repo.purchases[purchase.id] = purchase
        self.suppliers.record_purchase(purchase)
        logger.info("Purchase %s from %s: total=%d paid=%d", purchase.id, supplier.id, total, paid_cents)
        return PurchaseResult(purchase=purchase, created_item_ids=created)


class PurchaseReturnReconciler:
    def __init__(self, repo: LedgerRepository, stock: StockLedger, suppliers: SupplierLedger):
        self.repo = repo
        self.stock = stock
        self.suppliers = suppliers

    def _return_lines(self, purchase: PurchaseRecord, quantities: dict[str, int]) -> list[PurchaseReturnLine]:
        if not quantities:
            raise ValidationError("Select at least one item to return")
        for item_id, qty in quantities.items():
            _non_negative_int(f"Return quantity for item {item_id}", qty)
            if purchase.line_for(item_id) is None:
                raise ValidationError(f"Item {item_id} is not part of purchase {purchase.id}")
        if not any(quantities.values()):
            raise ValidationError("Select at least one item to return")

        lines = []
        for line in purchase.lines:
            requested = quantities.get(line.item_id, 0)
            if requested <= 0:
                continue
            item = self.repo.items.get(line.item_id)
            on_hand = item.quantity if item else 0
            lines.append(PurchaseReturnLine(
                item_id=line.item_id,
                name=line.name,
                purchased_quantity=line.quantity,
                requested_quantity=requested,
                quantity=min(requested, line.quantity, on_hand),
                cost_price_cents=line.cost_price_cents,
            ))
        if not any(line.quantity for line in lines):
            raise ValidationError("None of the requested units are on hand to return")
        return lines

    def return_purchase(
        self,
        purchase_id: str,
        quantities: dict[str, int],
        reason: str,
        *,
        created_by: str | None = None,
    ) -> PurchaseReturnResult:
        reason = require_text("reason", reason)
        purchase = self.repo.get_purchase(purchase_id)
        if purchase.is_deleted:
            raise ConflictError(f"Purchase {purchase_id} has already been returned or deleted")

        lines = self._return_lines(purchase, quantities)
        total_value = sum(line.value_cents for line in lines)
        debt_reduction = min(total_value, purchase.remaining_cents)

        return_id, seq = self.repo.allocate(COLLECTION_PURCHASE_RETURNS)
        record = PurchaseReturnRecord(
            id=return_id,
            purchase_id=purchase.id,
            supplier_id=purchase.supplier_id,
            reason=reason,
            lines=lines,
            total_value_cents=total_value,
            debt_reduction_cents=debt_reduction,
            cash_owed_cents=total_value - debt_reduction,
            created_at=utcnow(),
            created_by=created_by,
            seq=seq,
        )
        self.repo.purchase_returns[record.id] = record

        movements = [self.stock.deduct(line.item_id, line.quantity) for line in lines if line.quantity > 0]
        purchase.mark_deleted(reason)
        self.suppliers.refresh(purchase.supplier_id)
        logger.info(
            "Purchase return %s against %s: value=%d debt_reduction=%d cash_owed=%d",
            record.id, purchase.id, total_value, record.debt_reduction_cents, record.cash_owed_cents,
        )
        return PurchaseReturnResult(record=record, movements=movements)

    def restore_purchase(self, purchase_id: str) -> PurchaseReturnResult | None:
        """
        Bring a returned receipt back.

        The latest return against it is marked reversed, its units go back
        into stock, and supplier balances are folded again without it.
        Returns None when the receipt had no return to reverse.
        """
        purchase = self.repo.get_purchase(purchase_id)
        if not purchase.is_deleted:
            raise ConflictError(f"Purchase {purchase_id} is not deleted")
        supplier = self.repo.get_supplier(purchase.supplier_id)
        if supplier.is_deleted:
            raise ConflictError(f"Supplier {supplier.id} is deleted; restore it first")

        active = [
            r for r in self.repo.purchase_returns.values()
            if r.purchase_id == purchase.id and not r.is_reversed
        ]
        result = None
        if active:
            record = max(active, key=lambda r: r.seq)
            record.is_reversed = True
            record.reversed_at = utcnow()
            movements = [
                self.stock.restock(line.item_id, line.quantity)
                for line in record.lines
                if line.quantity > 0 and line.item_id in self.repo.items
            ]
            result = PurchaseReturnResult(record=record, movements=movements)

        purchase.mark_restored()
        self.suppliers.refresh(purchase.supplier_id)
        return result

    def purge_purchase(self, purchase_id: str) -> PurchaseRecord:
        """
        Remove a returned receipt for good, with its return records and payments.

        Only receipts that no longer move the supplier's debt or credit can
        go; anything else would rewrite the supplier's balance.
        """
        purchase = self.repo.get_purchase(purchase_id)
        if not purchase.is_deleted:
            raise ConflictError(f"Purchase {purchase_id} is not deleted; return it before purging")
        supplier = self.suppliers.refresh(purchase.supplier_id)
        before = (supplier.total_debt_cents, supplier.credit_cents)

        returns = {k: r for k, r in self.repo.purchase_returns.items() if r.purchase_id == purchase.id}
        payments = {k: p for k, p in self.repo.payments.items() if p.purchase_id == purchase.id}
        for key in returns:
            del self.repo.purchase_returns[key]
        for key in payments:
            del self.repo.payments[key]
        del self.repo.purchases[purchase.id]

        supplier = self.suppliers.refresh(purchase.supplier_id)
        if (supplier.total_debt_cents, supplier.credit_cents) != before:
            self.repo.purchases[purchase.id] = purchase
            self.repo.purchase_returns.update(returns)
            self.repo.payments.update(payments)
            self.suppliers.refresh(purchase.supplier_id)
            raise ConflictError(f"Purchase {purchase_id} still affects supplier {supplier.id} balances")
        logger.info("Purchase %s purged with %d returns and %d payments", purchase.id, len(returns), len(payments))
        return purchase
