# Overview: Stock ledger; quantity on hand and weighted-average cost per item.

"""
Inventory Invariants (authoritative)

- Quantity on hand is never negative. Deductions clamp at zero and report
  the applied quantity next to the requested one.
- RECEIVE is the only movement that changes cost:
      avg' = (qty * avg + added * unit_cost) / (qty + added)
  If the resulting quantity is 0 the average becomes unit_cost.
- The average is kept exact; the WAC exposed to callers is the nearest
  cent (half-up). For any run of receipts the WAC equals
  sum(qty * cost) / sum(qty), rounded.
- Sales, sale returns and purchase returns move quantity only. Selling
  stock does not change the blended cost basis of what remains, and
  returned units come back at that same basis.
"""

from __future__ import annotations

import logging
import random
from fractions import Fraction

from ..models import StockItem, StockMovement
from ..validation import ConflictError, ValidationError, require_text
from .record_store import COLLECTION_ITEMS
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


class StockLedger:
    def __init__(self, repo: LedgerRepository):
        self.repo = repo

    def _generate_code(self) -> str:
        taken = {item.code for item in self.repo.items.values()}
        while True:
            code = str(random.randint(100000, 999999))
            if code not in taken:
                return code

    def create_item(
        self,
        *,
        name: str,
        retail_price_cents: int = 0,
        unit_cost_cents: int = 0,
        quantity: int = 0,
        code: str | None = None,
        description: str | None = None,
    ) -> StockItem:
        """
        Register a new stocked item.

        Opening quantity and cost count as the item's first receipt.
        """
        name = require_text("name", name)
        if retail_price_cents < 0 or unit_cost_cents < 0:
            raise ValidationError("Prices cannot be negative")
        if quantity < 0:
            raise ValidationError("Opening quantity cannot be negative")

        if code:
            code = code.strip()
            if any(item.code == code for item in self.repo.items.values() if not item.is_deleted):
                raise ValidationError(f"Item code '{code}' already exists")
        else:
            code = self._generate_code()

        item_id, seq = self.repo.allocate(COLLECTION_ITEMS)
        item = StockItem(
            id=item_id,
            code=code,
            name=name,
            description=description,
            quantity=quantity,
            cost_basis=Fraction(unit_cost_cents),
            retail_price_cents=retail_price_cents,
            seq=seq,
        )
        self.repo.items[item.id] = item
        return item

    def receive(
        self,
        item_id: str,
        added_qty: int,
        unit_cost_cents: int,
        *,
        retail_price_cents: int | None = None,
    ) -> StockItem:
        """Add received units and fold their cost into the weighted average."""
        if added_qty < 0:
            raise ValidationError("Received quantity cannot be negative")
        if unit_cost_cents < 0:
            raise ValidationError("Unit cost cannot be negative")
        if retail_price_cents is not None and retail_price_cents < 0:
            raise ValidationError("Retail price cannot be negative")
        item = self.repo.get_item(item_id)

        total_qty = item.quantity + added_qty
        if total_qty == 0:
            item.cost_basis = Fraction(unit_cost_cents)
        else:
            item.cost_basis = (item.quantity * item.cost_basis + added_qty * unit_cost_cents) / total_qty
        item.quantity = total_qty
        if retail_price_cents is not None:
            item.retail_price_cents = retail_price_cents

        logger.debug("Received %d of %s at %d; wac now %d", added_qty, item_id, unit_cost_cents, item.unit_cost_cents)
        return item

    def deduct(self, item_id: str, qty: int) -> StockMovement:
        """Remove units, clamping at zero. Cost basis is left alone."""
        if qty < 0:
            raise ValidationError("Deducted quantity cannot be negative")
        item = self.repo.get_item(item_id)
        applied = min(qty, item.quantity)
        item.quantity -= applied
        if applied < qty:
            logger.info("Deduction of %d from %s clamped to %d", qty, item_id, applied)
        return StockMovement(item_id=item_id, requested=qty, applied=applied, quantity_after=item.quantity)

    def restock(self, item_id: str, qty: int) -> StockMovement:
        """Put units back on hand without touching cost."""
        if qty < 0:
            raise ValidationError("Restocked quantity cannot be negative")
        item = self.repo.get_item(item_id)
        item.quantity += qty
        return StockMovement(item_id=item_id, requested=qty, applied=qty, quantity_after=item.quantity)

    def delete_item(self, item_id: str, reason: str) -> StockItem:
        reason = require_text("reason", reason)
        item = self.repo.get_item(item_id)
        item.mark_deleted(reason)
        return item

    def restore_item(self, item_id: str) -> StockItem:
        item = self.repo.get_item(item_id)
        item.mark_restored()
        return item

    def update_item(
        self,
        item_id: str,
        *,
        name: str | None = None,
        code: str | None = None,
        description: str | None = None,
        retail_price_cents: int | None = None,
    ) -> StockItem:
        """
        Edit an item's descriptive fields and retail price.

        Quantity and cost only move through receive/deduct, so they are not
        editable here. Fields left as None are unchanged.
        """
        item = self.repo.get_item(item_id)
        if item.is_deleted:
            raise ConflictError(f"Item {item_id} is deleted; restore it first")
        if name is not None:
            item.name = require_text("name", name)
        if code is not None:
            code = require_text("code", code)
            if any(
                other.code == code and other.id != item.id
                for other in self.repo.items.values()
                if not other.is_deleted
            ):
                raise ValidationError(f"Item code '{code}' already exists")
            item.code = code
        if description is not None:
            item.description = description
        if retail_price_cents is not None:
            if retail_price_cents < 0:
                raise ValidationError("Retail price cannot be negative")
            item.retail_price_cents = retail_price_cents
        return item

    def purge_item(self, item_id: str) -> StockItem:
        """Remove a soft-deleted item for good."""
        item = self.repo.get_item(item_id)
        if not item.is_deleted:
            raise ConflictError(f"Item {item_id} is not deleted; delete it before purging")
        del self.repo.items[item.id]
        logger.info("Item %s purged", item.id)
        return item
