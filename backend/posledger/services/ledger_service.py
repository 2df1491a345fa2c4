# Overview: LedgerService facade; owns ledger state and persists every mutation as one write.

"""
Ledger Service

One object that owns the repository and the engines built over it. Every
public mutation runs inside _writing(): the engines change the in-memory
records, then the touched collections are written through in a single
store transaction. If anything raises (validation, a stale collection, a
database error) the in-memory state is reloaded from the store so no half
applied change survives.

Snapshots:
- export_snapshot() returns every collection as plain dicts.
- import_snapshot() and the restore_* helpers replace collections
  verbatim. Input that is not a list counts as empty; records that cannot
  be read are skipped with a warning. Cached supplier totals are kept as
  imported until reconcile_suppliers() folds them again.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from ..models import Discount
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError
from .inventory_service import StockLedger
from .purchase_service import PurchaseEngine, PurchaseReturnReconciler
from .record_store import (
    ALL_COLLECTIONS,
    COLLECTION_ITEMS,
    COLLECTION_PAYMENTS,
    COLLECTION_PURCHASE_RETURNS,
    COLLECTION_PURCHASES,
    COLLECTION_SALE_RETURNS,
    COLLECTION_SALES,
    COLLECTION_SUPPLIERS,
    RecordStore,
)
from .repository import COLLECTION_SPECS, LedgerRepository, parse_records
from .return_service import SaleReturnCalculator
from .sales_service import SalesEngine
from .supplier_service import SupplierLedger

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_SUPPLIER_SIDE = (
    COLLECTION_ITEMS,
    COLLECTION_PURCHASES,
    COLLECTION_PURCHASE_RETURNS,
    COLLECTION_SUPPLIERS,
    COLLECTION_PAYMENTS,
)


@dataclass(frozen=True)
class LedgerPolicy:
    track_supplier_credit: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "LedgerPolicy":
        return cls(track_supplier_credit=bool(config.get("TRACK_SUPPLIER_CREDIT", True)))


class LedgerService:
    def __init__(self, store: RecordStore, policy: LedgerPolicy | None = None):
        self.store = store
        self.policy = policy or LedgerPolicy()
        self.reload()

    def reload(self) -> None:
        """Drop in-memory state and rebuild it from the store."""
        self.repo = LedgerRepository(self.store)
        self.stock = StockLedger(self.repo)
        self.sales = SalesEngine(self.repo, self.stock)
        self.sale_returns = SaleReturnCalculator(self.repo, self.stock, self.sales)
        self.suppliers = SupplierLedger(self.repo, track_credit=self.policy.track_supplier_credit)
        self.purchases = PurchaseEngine(self.repo, self.stock, self.suppliers)
        self.purchase_returns = PurchaseReturnReconciler(self.repo, self.stock, self.suppliers)

    @contextmanager
    def _writing(self, *names: str) -> Iterator[None]:
        try:
            yield
            self.repo.save(*names)
        except Exception:
            self.reload()
            raise

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def list_items(self, *, include_deleted: bool = False):
        return [i for i in self.repo.items.values() if include_deleted or not i.is_deleted]

    def get_item(self, item_id: str):
        return self.repo.get_item(item_id)

    def create_item(self, **fields):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.create_item(**fields)

    def receive(self, item_id: str, quantity: int, unit_cost_cents: int, *, retail_price_cents: int | None = None):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.receive(item_id, quantity, unit_cost_cents, retail_price_cents=retail_price_cents)

    def deduct(self, item_id: str, quantity: int):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.deduct(item_id, quantity)

    def delete_item(self, item_id: str, reason: str):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.delete_item(item_id, reason)

    def restore_item(self, item_id: str):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.restore_item(item_id)

    def update_item(self, item_id: str, **fields):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.update_item(item_id, **fields)

    def purge_item(self, item_id: str):
        with self._writing(COLLECTION_ITEMS):
            return self.stock.purge_item(item_id)

    # ------------------------------------------------------------------
    # Sales and sale returns
    # ------------------------------------------------------------------

    def list_sales(self, *, include_deleted: bool = False):
        return [s for s in self.repo.sales.values() if include_deleted or not s.is_deleted]

    def get_sale(self, sale_id: str):
        return self.repo.get_sale(sale_id)

    def create_sale(self, *, lines: list[dict], discount: Discount | None = None, **details):
        with self._writing(COLLECTION_SALES, COLLECTION_ITEMS):
            return self.sales.create_sale(lines=lines, discount=discount, **details)

    def delete_sale(self, sale_id: str, reason: str, *, restore_stock: bool = True):
        with self._writing(COLLECTION_SALES, COLLECTION_ITEMS):
            return self.sales.delete_sale(sale_id, reason, restore_stock=restore_stock)

    def restore_sale(self, sale_id: str):
        with self._writing(COLLECTION_SALES, COLLECTION_ITEMS):
            return self.sales.restore_sale(sale_id)

    def returnable_quantities(self, sale_id: str) -> dict[str, int]:
        return self.sale_returns.returnable_quantities(sale_id)

    def list_sale_returns(self, *, sale_id: str | None = None, include_deleted: bool = False):
        return [
            r for r in self.repo.sale_returns.values()
            if (sale_id is None or r.sale_id == sale_id) and (include_deleted or not r.is_deleted)
        ]

    def get_sale_return(self, return_id: str):
        return self.repo.get_sale_return(return_id)

    def return_sale(self, sale_id: str, quantities: dict[str, int], *, created_by: str | None = None):
        with self._writing(COLLECTION_SALE_RETURNS, COLLECTION_ITEMS):
            return self.sale_returns.return_sale(sale_id, quantities, created_by=created_by)

    def return_all(self, sale_id: str, *, created_by: str | None = None):
        with self._writing(COLLECTION_SALE_RETURNS, COLLECTION_ITEMS):
            return self.sale_returns.return_all(sale_id, created_by=created_by)

    def delete_sale_return(self, return_id: str, reason: str):
        with self._writing(COLLECTION_SALE_RETURNS, COLLECTION_ITEMS):
            return self.sale_returns.delete_sale_return(return_id, reason)

    def restore_sale_return(self, return_id: str):
        with self._writing(COLLECTION_SALE_RETURNS, COLLECTION_ITEMS):
            return self.sale_returns.restore_sale_return(return_id)

    def purge_sale(self, sale_id: str) -> list[str]:
        with self._writing(COLLECTION_SALES, COLLECTION_SALE_RETURNS):
            return self.sales.purge_sale(sale_id)

    def purge_sale_return(self, return_id: str):
        with self._writing(COLLECTION_SALE_RETURNS):
            return self.sale_returns.purge_sale_return(return_id)

    # ------------------------------------------------------------------
    # Suppliers
    # ------------------------------------------------------------------

    def list_suppliers(self, *, include_deleted: bool = False):
        return [s for s in self.repo.suppliers.values() if include_deleted or not s.is_deleted]

    def get_supplier(self, supplier_id: str):
        return self.repo.get_supplier(supplier_id)

    def create_supplier(self, *, name: str, phone: str | None = None, tax_number: str | None = None):
        with self._writing(COLLECTION_SUPPLIERS):
            return self.suppliers.create_supplier(name=name, phone=phone, tax_number=tax_number)

    def delete_supplier(self, supplier_id: str, reason: str | None = None):
        with self._writing(COLLECTION_SUPPLIERS):
            return self.suppliers.delete_supplier(supplier_id, reason)

    def restore_supplier(self, supplier_id: str):
        with self._writing(COLLECTION_SUPPLIERS, COLLECTION_PURCHASES):
            return self.suppliers.restore_supplier(supplier_id)

    def record_payment(self, supplier_id: str, purchase_id: str, amount_cents: int, **details):
        with self._writing(COLLECTION_PAYMENTS, COLLECTION_SUPPLIERS, COLLECTION_PURCHASES):
            return self.suppliers.record_payment(supplier_id, purchase_id, amount_cents, **details)

    def pay_purchase(self, purchase_id: str, amount_cents: int, **details):
        """Pay a receipt; the supplier is taken from the receipt itself."""
        purchase = self.repo.get_purchase(purchase_id)
        return self.record_payment(purchase.supplier_id, purchase_id, amount_cents, **details)

    def settle_credit(self, supplier_id: str, amount_cents: int, **details):
        with self._writing(COLLECTION_PAYMENTS, COLLECTION_SUPPLIERS, COLLECTION_PURCHASES):
            return self.suppliers.settle_credit(supplier_id, amount_cents, **details)

    def supplier_statement(self, supplier_id: str) -> dict:
        return self.suppliers.statement(supplier_id)

    def reconcile_suppliers(self):
        with self._writing(COLLECTION_SUPPLIERS, COLLECTION_PURCHASES):
            return self.suppliers.refresh_all()

    # ------------------------------------------------------------------
    # Purchases and purchase returns
    # ------------------------------------------------------------------

    def list_purchases(self, *, supplier_id: str | None = None, include_deleted: bool = False):
        return [
            p for p in self.repo.purchases.values()
            if (supplier_id is None or p.supplier_id == supplier_id) and (include_deleted or not p.is_deleted)
        ]

    def get_purchase(self, purchase_id: str):
        return self.repo.get_purchase(purchase_id)

    def create_purchase(self, *, supplier_id: str, lines: list[dict], paid_cents: int = 0, **details):
        with self._writing(*_SUPPLIER_SIDE):
            return self.purchases.create_purchase(
                supplier_id=supplier_id, lines=lines, paid_cents=paid_cents, **details
            )

    def return_purchase(self, purchase_id: str, quantities: dict[str, int], reason: str, *, created_by: str | None = None):
        with self._writing(*_SUPPLIER_SIDE):
            return self.purchase_returns.return_purchase(purchase_id, quantities, reason, created_by=created_by)

    def restore_purchase(self, purchase_id: str):
        with self._writing(*_SUPPLIER_SIDE):
            return self.purchase_returns.restore_purchase(purchase_id)

    def purge_purchase(self, purchase_id: str):
        with self._writing(*_SUPPLIER_SIDE):
            return self.purchase_returns.purge_purchase(purchase_id)

    # ------------------------------------------------------------------
    # Snapshots and administration
    # ------------------------------------------------------------------

    def export_snapshot(self) -> dict:
        snapshot: dict[str, Any] = {"version": SNAPSHOT_VERSION, "exported_at": to_utc_z(utcnow())}
        for name in ALL_COLLECTIONS:
            attr, _, _ = COLLECTION_SPECS[name]
            snapshot[attr] = [record.to_dict() for record in self.repo.collection(name).values()]
        return snapshot

    def _restore(self, name: str, raw: Any) -> int:
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning("Restore of %s expected a list, got %s; restoring empty", name, type(raw).__name__)
            raw = []
        records = parse_records(name, raw)
        self.repo.replace(name, records)
        return len(records)

    def _restore_one(self, name: str, raw: Any) -> int:
        with self._writing(name):
            return self._restore(name, raw)

    def restore_items(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_ITEMS, raw)

    def restore_sales(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_SALES, raw)

    def restore_sale_returns(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_SALE_RETURNS, raw)

    def restore_purchases(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_PURCHASES, raw)

    def restore_purchase_returns(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_PURCHASE_RETURNS, raw)

    def restore_suppliers(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_SUPPLIERS, raw)

    def restore_payments(self, raw: Any) -> int:
        return self._restore_one(COLLECTION_PAYMENTS, raw)

    def import_snapshot(self, data: Any) -> dict[str, int]:
        """Replace every collection from an exported snapshot. Returns counts per family."""
        if not isinstance(data, dict):
            raise ValidationError("Snapshot must be a JSON object")
        counts = {}
        with self._writing(*ALL_COLLECTIONS):
            for name in ALL_COLLECTIONS:
                attr, _, _ = COLLECTION_SPECS[name]
                counts[attr] = self._restore(name, data.get(attr))
        logger.info("Snapshot imported: %s", counts)
        return counts

    def empty_bin(self) -> dict[str, int]:
        """
        Permanently remove soft-deleted items, sales and sale returns.

        Returns of a purged sale go with it. Purchases stay: supplier
        balances are folded from them, so they are purged one at a time
        with purge_purchase().
        """
        counts = {"items": 0, "sales": 0, "sale_returns": 0}
        with self._writing(COLLECTION_ITEMS, COLLECTION_SALES, COLLECTION_SALE_RETURNS):
            for sale in [s for s in self.repo.sales.values() if s.is_deleted]:
                counts["sale_returns"] += len(self.sales.purge_sale(sale.id))
                counts["sales"] += 1
            for record in [r for r in self.repo.sale_returns.values() if r.is_deleted]:
                self.sale_returns.purge_sale_return(record.id)
                counts["sale_returns"] += 1
            for item in [i for i in self.repo.items.values() if i.is_deleted]:
                self.stock.purge_item(item.id)
                counts["items"] += 1
        logger.info("Recycle bin emptied: %s", counts)
        return counts
