# Overview: Sale returns; discount-proportional refunds with a per-item return cap.

"""
Sale Return Processing

WHY: A whole-invoice discount has to be shared out when only part of the
invoice comes back. The rule used here: every returned unit is refunded at
its listed price times the fraction of the listed total the customer
actually paid.

    multiplier = net_total / subtotal     (1 when subtotal is 0)
    refund     = qty * unit_price * multiplier, nearest cent (half-up)

CAP: for each item, units returned across all non-deleted returns of a
sale never exceed the units sold. A request above what is still
returnable is rejected with ReturnQuantityError carrying the available
quantity; nothing is clamped silently.

FULL RETURN: when a return brings every line of the sale back, its lines
absorb the rounding residual (last line first, never below zero) so that
the refunds of all active returns add up to the sale's net total exactly.

COGS: return lines copy the cost snapshot from the original sale line,
not the item's current WAC.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from fractions import Fraction

from ..models import SaleRecord, SaleReturnLine, SaleReturnRecord, StockMovement
from ..models.inventory import round_half_up
from ..time_utils import utcnow
from ..validation import ConflictError, ReturnQuantityError, ValidationError, require_text
from .inventory_service import StockLedger
from .record_store import COLLECTION_SALE_RETURNS
from .repository import LedgerRepository
from .sales_service import SalesEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleReturnResult:
    record: SaleReturnRecord
    movements: list[StockMovement]
    multiplier: Fraction

    def to_dict(self) -> dict:
        return {
            "return": self.record.to_dict(),
            "stock_movements": [m.to_dict() for m in self.movements],
            "refund_multiplier": float(self.multiplier),
        }


def refund_multiplier(sale: SaleRecord) -> Fraction:
    """Fraction of the listed price the customer actually paid."""
    if sale.subtotal_cents <= 0:
        return Fraction(1)
    return Fraction(sale.net_total_cents, sale.subtotal_cents)


class SaleReturnCalculator:
    def __init__(self, repo: LedgerRepository, stock: StockLedger, sales: SalesEngine):
        self.repo = repo
        self.stock = stock
        self.sales = sales

    def returnable_quantities(self, sale_id: str) -> dict[str, int]:
        sale = self.repo.get_sale(sale_id)
        return self.sales.outstanding_quantities(sale)

    def _check_quantities(self, sale: SaleRecord, quantities: dict[str, int]) -> dict[str, int]:
        if not quantities:
            raise ValidationError("Select at least one item to return")
        available = self.sales.outstanding_quantities(sale)
        requested = {}
        for item_id, qty in quantities.items():
            if not isinstance(qty, int) or isinstance(qty, bool) or qty < 0:
                raise ValidationError(f"Return quantity for item {item_id} must be a non-negative integer")
            if item_id not in available:
                raise ValidationError(f"Item {item_id} is not part of sale {sale.id}")
            if qty > available[item_id]:
                raise ReturnQuantityError(item_id, qty, available[item_id])
            if qty > 0:
                requested[item_id] = qty
        if not requested:
            raise ValidationError("Select at least one item to return")
        return requested

    def _refund_lines(self, sale: SaleRecord, requested: dict[str, int]) -> list[SaleReturnLine]:
        multiplier = refund_multiplier(sale)
        lines = []
        # Sale line order keeps the residual on a deterministic line
        for sale_line in sale.lines:
            qty = requested.get(sale_line.item_id)
            if not qty:
                continue
            lines.append(SaleReturnLine(
                item_id=sale_line.item_id,
                name=sale_line.name,
                requested_quantity=qty,
                quantity=qty,
                refund_cents=round_half_up(qty * sale_line.unit_price_cents * multiplier),
                unit_cost_cents_at_sale=sale_line.unit_cost_cents_at_sale,
            ))

        prior = self.repo.active_returns_for_sale(sale.id)
        outstanding = self.sales.outstanding_quantities(sale)
        completes_sale = all(outstanding[item_id] == requested.get(item_id, 0) for item_id in outstanding)
        if completes_sale:
            already_refunded = sum(r.total_refund_cents for r in prior)
            residual = sale.net_total_cents - already_refunded - sum(line.refund_cents for line in lines)
            # each rounded line is off by at most half a cent
            tolerance = sum(len(r.lines) for r in prior) + len(lines)
            if residual and abs(residual) <= tolerance:
                residual = self._absorb(lines, residual)
            if residual:
                logger.warning(
                    "Sale %s: refund residual of %d cents left unabsorbed", sale.id, residual
                )
        return lines

    @staticmethod
    def _absorb(lines: list[SaleReturnLine], residual: int) -> int:
        """Fold the residual into the refunds from the last line backwards; no refund goes negative."""
        for index in range(len(lines) - 1, -1, -1):
            if not residual:
                break
            line = lines[index]
            delta = max(residual, -line.refund_cents)
            if delta:
                lines[index] = dataclasses.replace(line, refund_cents=line.refund_cents + delta)
                residual -= delta
        return residual

    def return_sale(
        self,
        sale_id: str,
        quantities: dict[str, int],
        *,
        created_by: str | None = None,
    ) -> SaleReturnResult:
        sale = self.repo.get_sale(sale_id)
        if sale.is_deleted:
            raise ConflictError(f"Cannot return items from deleted sale {sale_id}")
        requested = self._check_quantities(sale, quantities)
        lines = self._refund_lines(sale, requested)

        return_id, seq = self.repo.allocate(COLLECTION_SALE_RETURNS)
        record = SaleReturnRecord(
            id=return_id,
            sale_id=sale.id,
            lines=lines,
            total_refund_cents=sum(line.refund_cents for line in lines),
            created_at=utcnow(),
            created_by=created_by,
            seq=seq,
        )
        self.repo.sale_returns[record.id] = record

        movements = [
            self.stock.restock(line.item_id, line.quantity)
            for line in lines
            if line.item_id in self.repo.items
        ]
        logger.info("Sale return %s against %s: refund=%d", record.id, sale.id, record.total_refund_cents)
        return SaleReturnResult(record=record, movements=movements, multiplier=refund_multiplier(sale))

    def return_all(self, sale_id: str, *, created_by: str | None = None) -> SaleReturnResult:
        """Return every unit of the sale that has not come back yet."""
        remaining = {k: v for k, v in self.returnable_quantities(sale_id).items() if v > 0}
        if not remaining:
            raise ValidationError(f"Nothing left to return on sale {sale_id}")
        return self.return_sale(sale_id, remaining, created_by=created_by)

    def delete_sale_return(self, return_id: str, reason: str) -> SaleReturnResult:
        """Cancel a return: its units leave stock again and stop counting toward the cap."""
        reason = require_text("reason", reason)
        record = self.repo.get_sale_return(return_id)
        if record.is_deleted:
            raise ConflictError(f"Sale return {return_id} is already deleted")
        sale = self.repo.get_sale(record.sale_id)
        if sale.is_deleted:
            raise ConflictError(f"Sale {sale.id} is deleted; restore it first")

        movements = [
            self.stock.deduct(line.item_id, line.quantity)
            for line in record.lines
            if line.item_id in self.repo.items
        ]
        record.mark_deleted(reason)
        return SaleReturnResult(record=record, movements=movements, multiplier=refund_multiplier(sale))

    def restore_sale_return(self, return_id: str) -> SaleReturnResult:
        record = self.repo.get_sale_return(return_id)
        if not record.is_deleted:
            raise ConflictError(f"Sale return {return_id} is not deleted")
        sale = self.repo.get_sale(record.sale_id)
        if sale.is_deleted:
            raise ConflictError(f"Sale {sale.id} is deleted; restore it first")

        available = self.sales.outstanding_quantities(sale)
        for line in record.lines:
            if line.quantity > available.get(line.item_id, 0):
                raise ReturnQuantityError(line.item_id, line.quantity, available.get(line.item_id, 0))

        movements = [
            self.stock.restock(line.item_id, line.quantity)
            for line in record.lines
            if line.item_id in self.repo.items
        ]
        record.mark_restored()
        return SaleReturnResult(record=record, movements=movements, multiplier=refund_multiplier(sale))

    def purge_sale_return(self, return_id: str) -> SaleReturnRecord:
        """Remove a soft-deleted return for good. Its units already left stock when it was deleted."""
        record = self.repo.get_sale_return(return_id)
        if not record.is_deleted:
            raise ConflictError(f"Sale return {return_id} is not deleted; delete it before purging")
        del self.repo.sale_returns[record.id]
        return record
