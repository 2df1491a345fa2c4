# Overview: Supplier ledger; supplier and receipt balances folded from purchase, payment and return records.

"""
Supplier Ledger

Supplier totals and receipt balances are never edited in place. They are
re-derived by folding the supplier's records in sequence order:

    PURCHASE  supplied += total, paid += initial paid, debt += remaining
    PAYMENT   receipt paid += amount, receipt remaining floored at 0,
              supplier paid += amount (never capped)
    RETURN    receipt returned += value, remaining floored at 0,
              supplied -= value (floored at 0)
    REFUND    supplier pays credit back: credit -= amount, paid -= amount

Reversed purchase returns are skipped, so restoring a returned receipt is
just flipping that flag and folding again; there is no second copy of the
arithmetic to drift from the first.

Payments and returned value reduce the supplier's whole debt, not only
the receipt they name. Whatever exceeds that debt becomes supplier credit
(cash the supplier owes the store) when credit tracking is on. With it off
the excess is floored away, as older data expects:

    credit tracking:  debt -= min(amount, debt), credit += the rest
    legacy:           debt = max(0, debt - amount)

INVARIANTS:
- receipt.remaining == max(0, total - returned - paid)
- with credit tracking: debt - credit == supplied - paid
- debt never exceeds the sum of the supplier's receipt balances
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models import PurchaseRecord, Supplier, SupplierPayment
from ..models.purchasing import PAYMENT_KIND_PAYMENT, PAYMENT_KIND_REFUND
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, require_text
from .record_store import COLLECTION_PAYMENTS, COLLECTION_SUPPLIERS
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass
class _ReceiptBalance:
    paid: int
    returned: int
    remaining: int


@dataclass(frozen=True)
class PaymentResult:
    payment: SupplierPayment
    applied_cents: int
    excess_cents: int

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "applied_cents": self.applied_cents,
            "excess_cents": self.excess_cents,
        }


class SupplierLedger:
    def __init__(self, repo: LedgerRepository, *, track_credit: bool = True):
        self.repo = repo
        self.track_credit = track_credit

    # ------------------------------------------------------------------
    # Fold
    # ------------------------------------------------------------------

    def _events(self, supplier_id: str) -> list[tuple[int, str, object]]:
        events = [(p.seq, "PURCHASE", p) for p in self.repo.purchases_for_supplier(supplier_id)]
        events += [(p.seq, p.kind, p) for p in self.repo.payments_for_supplier(supplier_id)]
        events += [
            (r.seq, "RETURN", r)
            for r in self.repo.returns_for_supplier(supplier_id)
            if not r.is_reversed
        ]
        events.sort(key=lambda e: e[0])
        return events

    def _settle_debt(self, debt: int, credit: int, amount: int) -> tuple[int, int]:
        """Apply money against the supplier's whole debt; what is left over becomes credit."""
        applied = min(amount, debt)
        if self.track_credit:
            credit += amount - applied
        return debt - applied, credit

    def refresh(self, supplier_id: str) -> Supplier:
        """Re-derive the supplier's totals and its receipts' balances."""
        supplier = self.repo.get_supplier(supplier_id)
        supplied = paid = debt = credit = 0
        receipts: dict[str, _ReceiptBalance] = {}

        for _, kind, record in self._events(supplier_id):
            if kind == "PURCHASE":
                remaining = max(0, record.total_cents - record.initial_paid_cents)
                excess = max(0, record.initial_paid_cents - record.total_cents)
                receipts[record.id] = _ReceiptBalance(record.initial_paid_cents, 0, remaining)
                supplied += record.total_cents
                paid += record.initial_paid_cents
                debt += remaining
                if self.track_credit:
                    credit += excess

            elif kind == PAYMENT_KIND_PAYMENT:
                receipt = receipts.get(record.purchase_id)
                if receipt:
                    receipt.paid += record.amount_cents
                    receipt.remaining -= min(record.amount_cents, receipt.remaining)
                paid += record.amount_cents
                debt, credit = self._settle_debt(debt, credit, record.amount_cents)

            elif kind == PAYMENT_KIND_REFUND:
                paid -= record.amount_cents
                credit = max(0, credit - record.amount_cents)

            elif kind == "RETURN":
                receipt = receipts.get(record.purchase_id)
                value = record.total_value_cents
                if receipt:
                    receipt.returned += value
                    receipt.remaining -= min(value, receipt.remaining)
                supplied = max(0, supplied - value)
                debt, credit = self._settle_debt(debt, credit, value)

        supplier.total_supplied_cents = supplied
        supplier.total_paid_cents = paid
        supplier.total_debt_cents = max(0, debt)
        supplier.credit_cents = credit
        for purchase_id, balance in receipts.items():
            purchase = self.repo.purchases[purchase_id]
            purchase.paid_cents = balance.paid
            purchase.returned_cents = balance.returned
            purchase.remaining_cents = balance.remaining
        return supplier

    def refresh_all(self) -> list[Supplier]:
        return [self.refresh(supplier_id) for supplier_id in list(self.repo.suppliers)]

    # ------------------------------------------------------------------
    # Suppliers
    # ------------------------------------------------------------------

    def create_supplier(
        self,
        *,
        name: str,
        phone: str | None = None,
        tax_number: str | None = None,
    ) -> Supplier:
        """Create a supplier; an active supplier with the same name is returned instead."""
        name = require_text("name", name)
        for supplier in self.repo.suppliers.values():
            if supplier.name == name and not supplier.is_deleted:
                return supplier

        supplier_id, seq = self.repo.allocate(COLLECTION_SUPPLIERS)
        supplier = Supplier(id=supplier_id, name=name, phone=phone, tax_number=tax_number, seq=seq)
        self.repo.suppliers[supplier.id] = supplier
        return supplier

    def delete_supplier(self, supplier_id: str, reason: str | None = None) -> Supplier:
        supplier = self.repo.get_supplier(supplier_id)
        if supplier.is_deleted:
            raise ConflictError(f"Supplier {supplier_id} is already deleted")
        if supplier.total_debt_cents > 0:
            raise ConflictError("supplier has outstanding debt")
        if supplier.credit_cents > 0:
            raise ConflictError("supplier has unsettled credit")
        supplier.mark_deleted(reason)
        return supplier

    def restore_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.repo.get_supplier(supplier_id)
        if not supplier.is_deleted:
            raise ConflictError(f"Supplier {supplier_id} is not deleted")
        supplier.mark_restored()
        return self.refresh(supplier_id)

    def get_active_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.repo.get_supplier(supplier_id)
        if supplier.is_deleted:
            raise ConflictError(f"Supplier {supplier_id} is deleted")
        return supplier

    # ------------------------------------------------------------------
    # Ledger movements
    # ------------------------------------------------------------------

    def record_purchase(self, purchase: PurchaseRecord) -> Supplier:
        return self.refresh(purchase.supplier_id)

    def record_payment(
        self,
        supplier_id: str,
        purchase_id: str,
        amount_cents: int,
        *,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> PaymentResult:
        """
        Pay against a receipt.

        Overpayment is accepted: the receipt's remaining balance stops at 0
        and the supplier's total paid still grows by the full amount.

        The supplier's debt is reduced across all of its receipts; only the
        part above that whole debt becomes credit.
        """
        if amount_cents <= 0:
            raise ValidationError("Payment amount must be positive")
        supplier = self.get_active_supplier(supplier_id)
        purchase = self.repo.get_purchase(purchase_id)
        if purchase.supplier_id != supplier.id:
            raise ValidationError(f"Purchase {purchase_id} does not belong to supplier {supplier_id}")
        if purchase.is_deleted:
            raise ConflictError(f"Purchase {purchase_id} is deleted")

        debt_before = self.refresh(supplier.id).total_debt_cents
        applied = min(amount_cents, debt_before)
        payment_id, seq = self.repo.allocate(COLLECTION_PAYMENTS)
        payment = SupplierPayment(
            id=payment_id,
            supplier_id=supplier.id,
            purchase_id=purchase.id,
            kind=PAYMENT_KIND_PAYMENT,
            amount_cents=amount_cents,
            notes=notes or f"Payment for purchase #{purchase.id}",
            created_at=utcnow(),
            created_by=created_by,
            seq=seq,
        )
        self.repo.payments[payment.id] = payment
        self.refresh(supplier.id)
        if applied < amount_cents:
            logger.info(
                "Payment %s exceeds supplier %s debt by %d cents", payment.id, supplier.id, amount_cents - applied
            )
        return PaymentResult(payment=payment, applied_cents=applied, excess_cents=amount_cents - applied)

    def settle_credit(
        self,
        supplier_id: str,
        amount_cents: int,
        *,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> PaymentResult:
        """Record cash the supplier paid back against its credit."""
        if amount_cents <= 0:
            raise ValidationError("Settlement amount must be positive")
        supplier = self.repo.get_supplier(supplier_id)
        if amount_cents > supplier.credit_cents:
            raise ValidationError(
                f"Settlement of {amount_cents} exceeds supplier credit of {supplier.credit_cents}"
            )

        payment_id, seq = self.repo.allocate(COLLECTION_PAYMENTS)
        payment = SupplierPayment(
            id=payment_id,
            supplier_id=supplier.id,
            kind=PAYMENT_KIND_REFUND,
            amount_cents=amount_cents,
            notes=notes or "Credit settled by supplier",
            created_at=utcnow(),
            created_by=created_by,
            seq=seq,
        )
        self.repo.payments[payment.id] = payment
        self.refresh(supplier.id)
        return PaymentResult(payment=payment, applied_cents=amount_cents, excess_cents=0)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def statement(self, supplier_id: str) -> dict:
        supplier = self.repo.get_supplier(supplier_id)
        return {
            "supplier": supplier.to_dict(),
            "purchases": [p.to_dict() for p in self.repo.purchases_for_supplier(supplier_id)],
            "payments": [p.to_dict() for p in self.repo.payments_for_supplier(supplier_id)],
            "returns": [r.to_dict() for r in self.repo.returns_for_supplier(supplier_id)],
        }
