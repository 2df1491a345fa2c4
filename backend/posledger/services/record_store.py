# Overview: Record store collaborators; whole-collection load/save of ledger records.

"""
Record Store

The ledger keeps its state in namespaced collections of plain dict records.
A store only knows how to load a collection and overwrite it wholesale:

- load(name) -> list of records, [] when absent or unreadable
- save_all(name, records) -> idempotent full overwrite
- transaction() -> group several save_all calls into one atomic write

Two implementations:
- MemoryRecordStore: process-local, used by tests and scripts
- SqlRecordStore: one ledger_collections row per collection (Flask-SQLAlchemy)
"""

from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager
from typing import Iterator

from ..extensions import db
from ..models import StoredCollection
from ..validation import ConflictError
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


COLLECTION_ITEMS = "pos.items"
COLLECTION_SALES = "pos.sales"
COLLECTION_SALE_RETURNS = "pos.sale_returns"
COLLECTION_PURCHASES = "pos.purchases"
COLLECTION_PURCHASE_RETURNS = "pos.purchase_returns"
COLLECTION_SUPPLIERS = "pos.suppliers"
COLLECTION_PAYMENTS = "pos.supplier_payments"

ALL_COLLECTIONS = (
    COLLECTION_ITEMS,
    COLLECTION_SALES,
    COLLECTION_SALE_RETURNS,
    COLLECTION_PURCHASES,
    COLLECTION_PURCHASE_RETURNS,
    COLLECTION_SUPPLIERS,
    COLLECTION_PAYMENTS,
)


class StaleCollectionError(ConflictError):
    """Raised when a collection changed underneath this store since it was loaded."""


def _only_records(name: str, data) -> list[dict]:
    if not isinstance(data, list):
        logger.warning("Collection %s does not hold a list; treating as empty", name)
        return []
    records = [r for r in data if isinstance(r, dict)]
    if len(records) != len(data):
        logger.warning("Collection %s: dropped %d non-record entries", name, len(data) - len(records))
    return records


class RecordStore:
    """Base class: batching of save_all calls into one write."""

    def __init__(self):
        self._pending: dict[str, list[dict]] | None = None
        self._depth = 0

    def load(self, name: str) -> list[dict]:
        raise NotImplementedError

    def save_all(self, name: str, records: list[dict]) -> None:
        records = copy.deepcopy(list(records))
        if self._pending is not None:
            self._pending[name] = records
            return
        self._write({name: records})

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """
        Collect every save_all inside the block and write them together.

        Nested blocks join the outermost one. Nothing is written if the block
        raises.
        """
        if self._depth == 0:
            self._pending = {}
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._pending = None
            raise
        self._depth -= 1
        if self._depth == 0:
            batch, self._pending = self._pending, None
            if batch:
                self._write(batch)

    def _write(self, batch: dict[str, list[dict]]) -> None:
        raise NotImplementedError


class MemoryRecordStore(RecordStore):
    def __init__(self, initial: dict[str, list[dict]] | None = None):
        super().__init__()
        self._collections: dict[str, list[dict]] = {}
        for name, records in (initial or {}).items():
            self._collections[name] = copy.deepcopy(records)

    def load(self, name: str) -> list[dict]:
        return _only_records(name, copy.deepcopy(self._collections.get(name, [])))

    def _write(self, batch: dict[str, list[dict]]) -> None:
        self._collections.update(batch)

    def raw(self, name: str):
        """Direct access to what is stored, for tests and inspection."""
        return self._collections.get(name)


class SqlRecordStore(RecordStore):
    """
    Collections persisted in the ledger_collections table.

    Each load remembers the row's version_id. A write whose row moved on in
    the meantime raises StaleCollectionError instead of overwriting another
    writer's changes; the caller reloads and repeats the operation.
    """

    def __init__(self, *, attempts: int = 3):
        super().__init__()
        self.attempts = attempts
        self._versions: dict[str, int | None] = {}

    def load(self, name: str) -> list[dict]:
        row = db.session.query(StoredCollection).filter_by(name=name).first()
        if row is None:
            self._versions[name] = None
            return []
        self._versions[name] = row.version_id
        try:
            data = json.loads(row.payload or "[]")
        except ValueError:
            logger.warning("Collection %s holds unreadable JSON; treating as empty", name)
            return []
        return _only_records(name, data)

    def _write(self, batch: dict[str, list[dict]]) -> None:
        def _op():
            for name, records in batch.items():
                row = db.session.query(StoredCollection).filter_by(name=name).first()
                expected = self._versions.get(name)
                if row is None:
                    if expected is not None:
                        raise StaleCollectionError(f"Collection {name} was removed by another writer")
                    row = StoredCollection(name=name)
                    db.session.add(row)
                elif name in self._versions and expected != row.version_id:
                    raise StaleCollectionError(f"Collection {name} was changed by another writer")
                row.payload = json.dumps(records)
            db.session.flush()
            versions = {}
            for name in batch:
                row = db.session.query(StoredCollection).filter_by(name=name).one()
                versions[name] = row.version_id
            db.session.commit()
            self._versions.update(versions)

        try:
            run_with_retry(_op, attempts=self.attempts)
        except StaleCollectionError:
            db.session.rollback()
            raise
