"""
Purchase, payment and purchase return tests against the supplier ledger.

Amounts follow a 1000.00 receipt: 40 units at 25.00.
"""

import random

import pytest

from posledger.validation import ConflictError, NotFoundError, ValidationError


def _receipt(ledger, supplier, item, *, qty=40, cost=2500, paid=0):
    return ledger.create_purchase(
        supplier_id=supplier.id,
        lines=[{"item_id": item.id, "quantity": qty, "cost_price_cents": cost}],
        paid_cents=paid,
    ).purchase


def _assert_receipt_balanced(purchase):
    assert purchase.remaining_cents == max(
        0, purchase.total_cents - purchase.returned_cents - purchase.paid_cents
    )


def _assert_supplier_balanced(supplier):
    assert (
        supplier.total_debt_cents - supplier.credit_cents
        == supplier.total_supplied_cents - supplier.total_paid_cents
    )


class TestPurchases:
    def test_purchase_receives_stock_and_books_debt(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=40000)

        item = ledger.get_item(mug.id)
        assert item.quantity == 40
        assert item.unit_cost_cents == 2500
        assert purchase.total_cents == 100000
        assert purchase.remaining_cents == 60000
        assert purchase.payment_status == "CREDIT"

        s = ledger.get_supplier(supplier.id)
        assert (s.total_supplied_cents, s.total_paid_cents, s.total_debt_cents) == (100000, 40000, 60000)

    def test_paid_above_total_rejected(self, ledger, supplier, mug):
        with pytest.raises(ValidationError):
            _receipt(ledger, supplier, mug, paid=100001)
        assert ledger.get_item(mug.id).quantity == 0
        assert ledger.list_purchases() == []

    def test_purchase_can_create_new_items(self, ledger, supplier):
        result = ledger.create_purchase(
            supplier_id=supplier.id,
            lines=[{"name": "Teapot", "quantity": 6, "cost_price_cents": 1200, "retail_price_cents": 2400}],
            paid_cents=7200,
        )
        item = ledger.get_item(result.created_item_ids[0])
        assert (item.name, item.quantity, item.unit_cost_cents, item.retail_price_cents) == ("Teapot", 6, 1200, 2400)
        assert result.purchase.payment_status == "CASH"

    def test_unknown_supplier_is_not_found(self, ledger, mug):
        with pytest.raises(NotFoundError):
            ledger.create_purchase(
                supplier_id="nope", lines=[{"item_id": mug.id, "quantity": 1, "cost_price_cents": 1}]
            )

    def test_supplier_names_are_deduplicated(self, ledger, supplier):
        assert ledger.create_supplier(name="Acme Wholesale").id == supplier.id
        assert len(ledger.list_suppliers()) == 1


class TestPayments:
    def test_overpayment_keeps_full_amount_in_total_paid(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=80000)
        assert purchase.remaining_cents == 20000

        result = ledger.pay_purchase(purchase.id, 50000)

        purchase = ledger.get_purchase(purchase.id)
        s = ledger.get_supplier(supplier.id)
        assert purchase.remaining_cents == 0
        assert s.total_paid_cents == 130000
        assert (result.applied_cents, result.excess_cents) == (20000, 30000)
        assert s.credit_cents == 30000
        _assert_receipt_balanced(purchase)
        _assert_supplier_balanced(s)

    def test_payment_beyond_receipt_pays_down_other_debt(self, ledger, supplier, mug, plate):
        first = _receipt(ledger, supplier, mug)
        second = _receipt(ledger, supplier, plate)

        result = ledger.pay_purchase(first.id, 150000)

        s = ledger.get_supplier(supplier.id)
        assert (s.total_supplied_cents, s.total_paid_cents) == (200000, 150000)
        assert (s.total_debt_cents, s.credit_cents) == (50000, 0)
        assert (result.applied_cents, result.excess_cents) == (150000, 0)
        assert ledger.get_purchase(first.id).remaining_cents == 0
        assert ledger.get_purchase(second.id).remaining_cents == 100000
        _assert_supplier_balanced(s)

        ledger.pay_purchase(second.id, 50000)
        s = ledger.get_supplier(supplier.id)
        assert (s.total_debt_cents, s.credit_cents) == (0, 0)
        ledger.delete_supplier(supplier.id)

    def test_legacy_mode_applies_payment_to_whole_debt(self, legacy_ledger):
        supplier = legacy_ledger.create_supplier(name="Legacy Ltd")
        mug = legacy_ledger.create_item(name="Mug")
        first = _receipt(legacy_ledger, supplier, mug)
        _receipt(legacy_ledger, supplier, mug)

        legacy_ledger.pay_purchase(first.id, 150000)

        s = legacy_ledger.get_supplier(supplier.id)
        assert (s.total_debt_cents, s.credit_cents) == (50000, 0)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_payment_rejected(self, ledger, supplier, mug, amount):
        purchase = _receipt(ledger, supplier, mug)
        with pytest.raises(ValidationError):
            ledger.record_payment(supplier.id, purchase.id, amount)
        assert ledger.get_supplier(supplier.id).total_paid_cents == 0

    def test_payment_against_other_suppliers_receipt_rejected(self, ledger, supplier, mug):
        other = ledger.create_supplier(name="Other Co")
        purchase = _receipt(ledger, supplier, mug)
        with pytest.raises(ValidationError):
            ledger.record_payment(other.id, purchase.id, 100)

    def test_remaining_tracks_payments(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug)
        for amount in (10000, 25000, 5000):
            ledger.pay_purchase(purchase.id, amount)
            p = ledger.get_purchase(purchase.id)
            assert p.remaining_cents == p.total_cents - p.paid_cents


class TestPurchaseReturns:
    def test_return_with_debt_outstanding(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=40000)

        result = ledger.return_purchase(purchase.id, {mug.id: 10}, "damaged in transit")

        record = result.record
        assert record.total_value_cents == 25000
        assert (record.debt_reduction_cents, record.cash_owed_cents) == (25000, 0)
        purchase = ledger.get_purchase(purchase.id)
        assert purchase.remaining_cents == 35000
        assert purchase.is_deleted
        assert purchase.deletion_reason == "damaged in transit"
        s = ledger.get_supplier(supplier.id)
        assert s.total_debt_cents == 35000
        assert s.total_supplied_cents == 75000
        assert ledger.get_item(mug.id).quantity == 30
        assert ledger.get_item(mug.id).unit_cost_cents == 2500
        _assert_receipt_balanced(purchase)
        _assert_supplier_balanced(s)

    def test_return_of_fully_paid_receipt_books_credit(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=100000)

        record = ledger.return_purchase(purchase.id, {mug.id: 12}, "wrong colour").record

        assert (record.debt_reduction_cents, record.cash_owed_cents) == (0, 30000)
        assert ledger.get_purchase(purchase.id).remaining_cents == 0
        s = ledger.get_supplier(supplier.id)
        assert s.total_supplied_cents == 70000
        assert s.total_debt_cents == 0
        assert s.credit_cents == 30000
        _assert_supplier_balanced(s)

    def test_return_value_pays_down_other_receipts_before_credit(self, ledger, supplier, mug, plate):
        paid = _receipt(ledger, supplier, mug, paid=100000)
        _receipt(ledger, supplier, plate)

        record = ledger.return_purchase(paid.id, {mug.id: 12}, "wrong colour").record

        assert record.cash_owed_cents == 30000
        s = ledger.get_supplier(supplier.id)
        assert (s.total_debt_cents, s.credit_cents) == (70000, 0)
        _assert_supplier_balanced(s)

    def test_legacy_mode_discards_cash_owed(self, legacy_ledger):
        supplier = legacy_ledger.create_supplier(name="Legacy Ltd")
        mug = legacy_ledger.create_item(name="Mug")
        purchase = _receipt(legacy_ledger, supplier, mug, paid=100000)

        record = legacy_ledger.return_purchase(purchase.id, {mug.id: 12}, "wrong colour").record

        assert record.cash_owed_cents == 30000
        s = legacy_ledger.get_supplier(supplier.id)
        assert s.total_supplied_cents == 70000
        assert s.total_debt_cents == 0
        assert s.credit_cents == 0

    def test_quantities_clamp_to_purchased_and_on_hand(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, qty=10, cost=1000)
        ledger.deduct(mug.id, 7)

        result = ledger.return_purchase(purchase.id, {mug.id: 50}, "recall")

        line = result.record.lines[0]
        assert (line.requested_quantity, line.quantity) == (50, 3)
        assert result.truncated
        assert result.record.total_value_cents == 3000
        assert ledger.get_item(mug.id).quantity == 0

    @pytest.mark.parametrize("quantities,reason", [
        ({}, "recall"),
        ("zero", "recall"),
        ("one", " "),
    ])
    def test_invalid_returns_rejected(self, ledger, supplier, mug, quantities, reason):
        purchase = _receipt(ledger, supplier, mug)
        if quantities == "zero":
            quantities = {mug.id: 0}
        elif quantities == "one":
            quantities = {mug.id: 1}

        with pytest.raises(ValidationError):
            ledger.return_purchase(purchase.id, quantities, reason)
        assert not ledger.get_purchase(purchase.id).is_deleted
        assert ledger.get_item(mug.id).quantity == 40

    def test_nothing_on_hand_rejected(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug)
        ledger.deduct(mug.id, 40)
        with pytest.raises(ValidationError):
            ledger.return_purchase(purchase.id, {mug.id: 5}, "recall")

    def test_already_returned_receipt_rejected(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug)
        ledger.return_purchase(purchase.id, {mug.id: 1}, "recall")
        with pytest.raises(ConflictError):
            ledger.return_purchase(purchase.id, {mug.id: 1}, "recall")

    def test_restore_reverses_the_return(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=40000)
        before = ledger.get_supplier(supplier.id).to_dict()
        ledger.return_purchase(purchase.id, {mug.id: 10}, "damaged")

        reversed_return = ledger.restore_purchase(purchase.id)

        assert reversed_return.record.is_reversed
        purchase = ledger.get_purchase(purchase.id)
        assert not purchase.is_deleted
        assert purchase.remaining_cents == 60000
        assert purchase.returned_cents == 0
        assert ledger.get_item(mug.id).quantity == 40
        after = ledger.get_supplier(supplier.id).to_dict()
        for key in ("total_supplied_cents", "total_paid_cents", "total_debt_cents", "credit_cents"):
            assert after[key] == before[key]


class TestSupplierLifecycle:
    def test_delete_with_debt_is_a_conflict(self, ledger, supplier, mug):
        _receipt(ledger, supplier, mug, paid=0)
        with pytest.raises(ConflictError, match="outstanding debt"):
            ledger.delete_supplier(supplier.id)
        assert not ledger.get_supplier(supplier.id).is_deleted

    def test_delete_with_credit_is_a_conflict_until_settled(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=100000)
        ledger.return_purchase(purchase.id, {mug.id: 4}, "surplus")
        with pytest.raises(ConflictError):
            ledger.delete_supplier(supplier.id)

        ledger.settle_credit(supplier.id, 10000)
        s = ledger.get_supplier(supplier.id)
        assert s.credit_cents == 0
        assert s.total_paid_cents == 90000
        _assert_supplier_balanced(s)

        ledger.delete_supplier(supplier.id, "no longer used")
        assert ledger.get_supplier(supplier.id).is_deleted
        ledger.restore_supplier(supplier.id)
        assert not ledger.get_supplier(supplier.id).is_deleted

    def test_settling_more_than_credit_rejected(self, ledger, supplier):
        with pytest.raises(ValidationError):
            ledger.settle_credit(supplier.id, 1)

    def test_statement_lists_records(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug)
        ledger.pay_purchase(purchase.id, 1000)
        statement = ledger.supplier_statement(supplier.id)
        assert statement["supplier"]["id"] == supplier.id
        assert [p["id"] for p in statement["purchases"]] == [purchase.id]
        assert len(statement["payments"]) == 1
        assert statement["returns"] == []


class TestPurgePurchase:
    def test_fully_returned_unpaid_receipt_is_purged(self, ledger, supplier, mug, plate):
        kept = _receipt(ledger, supplier, plate, paid=30000)
        purchase = _receipt(ledger, supplier, mug)
        ledger.return_purchase(purchase.id, {mug.id: 40}, "cancelled order")
        before = ledger.get_supplier(supplier.id)
        before = (before.total_debt_cents, before.credit_cents)

        ledger.purge_purchase(purchase.id)

        with pytest.raises(NotFoundError):
            ledger.get_purchase(purchase.id)
        s = ledger.get_supplier(supplier.id)
        assert (s.total_debt_cents, s.credit_cents) == before == (70000, 0)
        assert [p.id for p in ledger.list_purchases(include_deleted=True)] == [kept.id]
        assert ledger.supplier_statement(supplier.id)["returns"] == []

    def test_receipt_still_owed_on_is_kept(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug, paid=20000)
        ledger.return_purchase(purchase.id, {mug.id: 10}, "damaged")

        with pytest.raises(ConflictError, match="supplier"):
            ledger.purge_purchase(purchase.id)

        assert ledger.get_purchase(purchase.id).is_deleted
        s = ledger.get_supplier(supplier.id)
        assert (s.total_debt_cents, s.total_paid_cents) == (55000, 20000)
        assert len(ledger.supplier_statement(supplier.id)["returns"]) == 1

    def test_active_receipt_cannot_be_purged(self, ledger, supplier, mug):
        purchase = _receipt(ledger, supplier, mug)
        with pytest.raises(ConflictError):
            ledger.purge_purchase(purchase.id)


def test_random_activity_keeps_balances_consistent(ledger, supplier):
    rng = random.Random(2024)
    items = [ledger.create_item(name=f"Part {i}") for i in range(3)]
    receipts = []

    for _ in range(60):
        action = rng.random()
        if action < 0.35 or not receipts:
            item = rng.choice(items)
            qty, cost = rng.randint(1, 20), rng.randint(1, 3000)
            paid = rng.randint(0, qty * cost)
            receipts.append(_receipt(ledger, supplier, item, qty=qty, cost=cost, paid=paid).id)
        elif action < 0.7:
            purchase = ledger.get_purchase(rng.choice(receipts))
            if not purchase.is_deleted:
                credit_before = ledger.get_supplier(supplier.id).credit_cents
                ledger.pay_purchase(purchase.id, rng.randint(1, 40000))
                s = ledger.get_supplier(supplier.id)
                # credit only grows once every receipt's debt is covered
                assert s.credit_cents == credit_before or s.total_debt_cents == 0
        elif action < 0.9:
            purchase = ledger.get_purchase(rng.choice(receipts))
            line = purchase.lines[0]
            if not purchase.is_deleted and ledger.get_item(line.item_id).quantity > 0:
                ledger.return_purchase(purchase.id, {line.item_id: rng.randint(1, line.quantity)}, "random")
        else:
            purchase = ledger.get_purchase(rng.choice(receipts))
            if purchase.is_deleted:
                ledger.restore_purchase(purchase.id)

        s = ledger.get_supplier(supplier.id)
        _assert_supplier_balanced(s)
        receipts_owed = sum(
            p.remaining_cents for p in ledger.list_purchases(supplier_id=supplier.id, include_deleted=True)
        )
        assert s.total_debt_cents <= receipts_owed
        for purchase_id in receipts:
            _assert_receipt_balanced(ledger.get_purchase(purchase_id))
