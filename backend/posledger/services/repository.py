# Overview: In-memory ledger state loaded from a record store; lookups and write-through.

from __future__ import annotations

import logging
import uuid
from typing import Iterable

from ..models import (
    PurchaseRecord,
    PurchaseReturnRecord,
    SaleRecord,
    SaleReturnRecord,
    StockItem,
    Supplier,
    SupplierPayment,
)
from ..validation import NotFoundError
from .record_store import (
    COLLECTION_ITEMS,
    COLLECTION_PAYMENTS,
    COLLECTION_PURCHASE_RETURNS,
    COLLECTION_PURCHASES,
    COLLECTION_SALE_RETURNS,
    COLLECTION_SALES,
    COLLECTION_SUPPLIERS,
    RecordStore,
)

logger = logging.getLogger(__name__)


# collection name -> (attribute on the repository, record class, id prefix)
COLLECTION_SPECS = {
    COLLECTION_ITEMS: ("items", StockItem, None),
    COLLECTION_SALES: ("sales", SaleRecord, "INV"),
    COLLECTION_SALE_RETURNS: ("sale_returns", SaleReturnRecord, "RET"),
    COLLECTION_PURCHASES: ("purchases", PurchaseRecord, "PUR"),
    COLLECTION_PURCHASE_RETURNS: ("purchase_returns", PurchaseReturnRecord, "PRT"),
    COLLECTION_SUPPLIERS: ("suppliers", Supplier, None),
    COLLECTION_PAYMENTS: ("payments", SupplierPayment, "PAY"),
}


def parse_records(name: str, raw: Iterable) -> list:
    """Build records for a collection, skipping entries that cannot be read."""
    _, cls, _ = COLLECTION_SPECS[name]
    records = []
    for entry in raw:
        if not isinstance(entry, dict):
            logger.warning("Skipping %s entry that is not an object: %r", name, entry)
            continue
        try:
            records.append(cls.from_dict(entry))
        except (AttributeError, KeyError, TypeError, ValueError, ZeroDivisionError) as exc:
            logger.warning("Skipping unreadable %s record %r: %s", name, entry, exc)
    return records


class LedgerRepository:
    """
    Owns every ledger record for one service instance.

    Records live in dicts keyed by id, in insertion order. Every new record
    gets the next value of a single sequence shared by all collections, so
    folds over mixed record kinds have a total order.
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self.items: dict[str, StockItem] = {}
        self.sales: dict[str, SaleRecord] = {}
        self.sale_returns: dict[str, SaleReturnRecord] = {}
        self.purchases: dict[str, PurchaseRecord] = {}
        self.purchase_returns: dict[str, PurchaseReturnRecord] = {}
        self.suppliers: dict[str, Supplier] = {}
        self.payments: dict[str, SupplierPayment] = {}
        self._seq = 0
        for name in COLLECTION_SPECS:
            self.replace(name, parse_records(name, store.load(name)))

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def allocate(self, name: str) -> tuple[str, int]:
        """Return (id, seq) for a new record of the given collection."""
        _, _, prefix = COLLECTION_SPECS[name]
        seq = self.next_seq()
        if prefix is None:
            return uuid.uuid4().hex, seq
        record_id = f"{prefix}-{seq:06d}"
        while record_id in self.collection(name):
            seq = self.next_seq()
            record_id = f"{prefix}-{seq:06d}"
        return record_id, seq

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def collection(self, name: str) -> dict:
        attr, _, _ = COLLECTION_SPECS[name]
        return getattr(self, attr)

    def replace(self, name: str, records: list) -> None:
        attr, _, _ = COLLECTION_SPECS[name]
        setattr(self, attr, {record.id: record for record in records})
        for record in records:
            self._seq = max(self._seq, record.seq)

    def save(self, *names: str) -> None:
        """Write the named collections through to the store as one unit."""
        with self.store.transaction():
            for name in names:
                records = self.collection(name).values()
                self.store.save_all(name, [record.to_dict() for record in records])

    # ------------------------------------------------------------------
    # Lookups (NotFoundError instead of silent no-ops)
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> StockItem:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    def get_sale(self, sale_id: str) -> SaleRecord:
        sale = self.sales.get(sale_id)
        if sale is None:
            raise NotFoundError("Sale", sale_id)
        return sale

    def get_sale_return(self, return_id: str) -> SaleReturnRecord:
        record = self.sale_returns.get(return_id)
        if record is None:
            raise NotFoundError("Sale return", return_id)
        return record

    def get_purchase(self, purchase_id: str) -> PurchaseRecord:
        purchase = self.purchases.get(purchase_id)
        if purchase is None:
            raise NotFoundError("Purchase", purchase_id)
        return purchase

    def get_purchase_return(self, return_id: str) -> PurchaseReturnRecord:
        record = self.purchase_returns.get(return_id)
        if record is None:
            raise NotFoundError("Purchase return", return_id)
        return record

    def get_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.suppliers.get(supplier_id)
        if supplier is None:
            raise NotFoundError("Supplier", supplier_id)
        return supplier

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active_returns_for_sale(self, sale_id: str) -> list[SaleReturnRecord]:
        return [
            r for r in self.sale_returns.values()
            if r.sale_id == sale_id and not r.is_deleted
        ]

    def purchases_for_supplier(self, supplier_id: str) -> list[PurchaseRecord]:
        return [p for p in self.purchases.values() if p.supplier_id == supplier_id]

    def payments_for_supplier(self, supplier_id: str) -> list[SupplierPayment]:
        return [p for p in self.payments.values() if p.supplier_id == supplier_id]

    def returns_for_supplier(self, supplier_id: str) -> list[PurchaseReturnRecord]:
        return [r for r in self.purchase_returns.values() if r.supplier_id == supplier_id]
