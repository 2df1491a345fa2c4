"""
Sales and sale return tests: discount-proportional refunds and the return cap.
"""

import itertools
import random

import pytest

from posledger.models import Discount
from posledger.validation import ConflictError, NotFoundError, ReturnQuantityError, ValidationError


def _stocked(ledger, name, price_cents, qty=100, cost_cents=0):
    item = ledger.create_item(name=name, retail_price_cents=price_cents)
    ledger.receive(item.id, qty, cost_cents)
    return item


@pytest.fixture
def discounted_sale(ledger):
    """Subtotal 1000.00 with a 10% discount: net 900.00."""
    lamp = _stocked(ledger, "Lamp", 10000, cost_cents=6000)
    shade = _stocked(ledger, "Shade", 50000, cost_cents=20000)
    result = ledger.create_sale(
        lines=[
            {"item_id": lamp.id, "quantity": 5},
            {"item_id": shade.id, "quantity": 1},
        ],
        discount=Discount("PERCENTAGE", 1000),
        customer_name="Walk-in",
    )
    return result.sale, lamp, shade


class TestCreateSale:
    def test_totals_and_stock(self, discounted_sale, ledger):
        sale, lamp, shade = discounted_sale
        assert sale.subtotal_cents == 100000
        assert sale.net_total_cents == 90000
        assert sale.discount_cents == 10000
        assert ledger.get_item(lamp.id).quantity == 95
        assert ledger.get_item(shade.id).quantity == 99

    def test_cost_snapshot_is_frozen(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        ledger.receive(lamp.id, 100, 9000)
        assert sale.line_for(lamp.id).unit_cost_cents_at_sale == 6000
        assert ledger.get_sale(sale.id).line_for(lamp.id).unit_cost_cents_at_sale == 6000

    def test_overselling_clamps_and_reports(self, ledger):
        item = _stocked(ledger, "Scarce", 1000, qty=2)
        result = ledger.create_sale(lines=[{"item_id": item.id, "quantity": 5}])
        movement = result.movements[0]
        assert (movement.requested, movement.applied) == (5, 2)
        assert ledger.get_item(item.id).quantity == 0

    def test_duplicate_lines_merge(self, ledger, mug):
        ledger.receive(mug.id, 10, 500)
        result = ledger.create_sale(lines=[
            {"item_id": mug.id, "quantity": 2},
            {"item_id": mug.id, "quantity": 3},
        ])
        assert len(result.sale.lines) == 1
        assert result.sale.lines[0].quantity == 5

    def test_fixed_discount_is_capped_at_subtotal(self, ledger, mug):
        result = ledger.create_sale(
            lines=[{"item_id": mug.id, "quantity": 1}],
            discount=Discount("FIXED", 999999),
        )
        assert result.sale.net_total_cents == 0

    @pytest.mark.parametrize("lines", [[], [{"item_id": "x", "quantity": 0}]])
    def test_bad_carts_rejected(self, ledger, lines):
        with pytest.raises((ValidationError, NotFoundError)):
            ledger.create_sale(lines=lines)
        assert ledger.list_sales() == []

    def test_percentage_over_100_rejected(self, ledger, mug):
        with pytest.raises(ValidationError):
            ledger.create_sale(lines=[{"item_id": mug.id, "quantity": 1}], discount=Discount("PERCENTAGE", 10001))


class TestProportionalRefund:
    def test_partial_return_refund(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        result = ledger.return_sale(sale.id, {lamp.id: 2})

        assert result.record.total_refund_cents == 18000
        assert result.record.lines[0].unit_cost_cents_at_sale == 6000
        assert ledger.get_item(lamp.id).quantity == 97

    def test_return_cap_rejects_excess(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        ledger.return_sale(sale.id, {lamp.id: 3})

        with pytest.raises(ReturnQuantityError) as exc_info:
            ledger.return_sale(sale.id, {lamp.id: 3})
        assert exc_info.value.available == 2
        assert ledger.returnable_quantities(sale.id)[lamp.id] == 2
        assert len(ledger.list_sale_returns(sale_id=sale.id)) == 1

    def test_unknown_item_and_empty_request_rejected(self, discounted_sale, ledger, mug):
        sale, lamp, _ = discounted_sale
        with pytest.raises(ValidationError):
            ledger.return_sale(sale.id, {mug.id: 1})
        with pytest.raises(ValidationError):
            ledger.return_sale(sale.id, {lamp.id: 0})
        with pytest.raises(NotFoundError):
            ledger.return_sale("INV-999999", {lamp.id: 1})

    def test_full_return_refunds_net_total(self, discounted_sale, ledger):
        sale, lamp, shade = discounted_sale
        ledger.return_sale(sale.id, {lamp.id: 1})
        ledger.return_all(sale.id)

        refunds = sum(r.total_refund_cents for r in ledger.list_sale_returns(sale_id=sale.id))
        assert refunds == sale.net_total_cents
        assert ledger.returnable_quantities(sale.id) == {lamp.id: 0, shade.id: 0}

    def test_full_return_absorbs_rounding_residual(self, ledger):
        a = _stocked(ledger, "Odd", 333)
        b = _stocked(ledger, "Penny", 1)
        sale = ledger.create_sale(
            lines=[{"item_id": a.id, "quantity": 3}, {"item_id": b.id, "quantity": 1}],
            discount=Discount("FIXED", 1),
        ).sale
        assert sale.net_total_cents == 999

        ledger.return_sale(sale.id, {a.id: 1})
        ledger.return_sale(sale.id, {a.id: 1})
        last = ledger.return_sale(sale.id, {a.id: 1, b.id: 1})

        refunds = sum(r.total_refund_cents for r in ledger.list_sale_returns(sale_id=sale.id))
        assert refunds == 999
        assert all(line.refund_cents >= 0 for line in last.record.lines)

    def test_any_return_order_stays_within_cap_and_sums_to_net(self, ledger):
        rng = random.Random(7)
        items = [_stocked(ledger, f"Item {i}", rng.randint(500, 5000)) for i in range(4)]
        lines = [{"item_id": item.id, "quantity": rng.randint(1, 6)} for item in items]
        sale = ledger.create_sale(lines=lines, discount=Discount("PERCENTAGE", 1750)).sale

        sold = {line.item_id: line.quantity for line in sale.lines}
        for _ in itertools.count():
            open_items = {k: v for k, v in ledger.returnable_quantities(sale.id).items() if v > 0}
            if not open_items:
                break
            item_id = rng.choice(sorted(open_items))
            ledger.return_sale(sale.id, {item_id: rng.randint(1, open_items[item_id])})

            returned = {}
            for record in ledger.list_sale_returns(sale_id=sale.id):
                for line in record.lines:
                    returned[line.item_id] = returned.get(line.item_id, 0) + line.quantity
            assert all(returned.get(k, 0) <= v for k, v in sold.items())

        refunds = sum(r.total_refund_cents for r in ledger.list_sale_returns(sale_id=sale.id))
        assert refunds == sale.net_total_cents

    def test_zero_subtotal_refunds_nothing(self, ledger):
        freebie = _stocked(ledger, "Freebie", 0)
        sale = ledger.create_sale(lines=[{"item_id": freebie.id, "quantity": 2}]).sale
        result = ledger.return_sale(sale.id, {freebie.id: 2})
        assert result.record.total_refund_cents == 0
        assert result.multiplier == 1


class TestSoftDeletes:
    def test_deleting_return_frees_cap_and_takes_stock_back(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        record = ledger.return_sale(sale.id, {lamp.id: 5}).record
        assert ledger.get_item(lamp.id).quantity == 100

        ledger.delete_sale_return(record.id, "entered twice")
        assert ledger.get_item(lamp.id).quantity == 95
        assert ledger.returnable_quantities(sale.id)[lamp.id] == 5

    def test_restoring_return_rechecks_cap(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        first = ledger.return_sale(sale.id, {lamp.id: 4}).record
        ledger.delete_sale_return(first.id, "mistake")
        ledger.return_sale(sale.id, {lamp.id: 3})

        with pytest.raises(ReturnQuantityError):
            ledger.restore_sale_return(first.id)
        assert ledger.returnable_quantities(sale.id)[lamp.id] == 2

    def test_delete_and_restore_sale_moves_outstanding_stock(self, discounted_sale, ledger):
        sale, lamp, shade = discounted_sale
        ledger.return_sale(sale.id, {lamp.id: 2})
        assert ledger.get_item(lamp.id).quantity == 97

        ledger.delete_sale(sale.id, "voided")
        assert ledger.get_item(lamp.id).quantity == 100
        assert ledger.get_item(shade.id).quantity == 100

        ledger.restore_sale(sale.id)
        assert ledger.get_item(lamp.id).quantity == 97
        assert ledger.get_item(shade.id).quantity == 99
        assert not ledger.get_sale(sale.id).is_deleted

    def test_deleted_sale_cannot_be_returned(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        ledger.delete_sale(sale.id, "voided", restore_stock=False)
        assert ledger.get_item(lamp.id).quantity == 95
        with pytest.raises(ConflictError):
            ledger.return_sale(sale.id, {lamp.id: 1})

    def test_empty_bin_purges_deleted_sales_with_their_returns(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        ledger.return_sale(sale.id, {lamp.id: 1})
        ledger.delete_sale(sale.id, "voided")

        counts = ledger.empty_bin()
        assert counts == {"items": 0, "sales": 1, "sale_returns": 1}
        with pytest.raises(NotFoundError):
            ledger.get_sale(sale.id)

    def test_return_of_deleted_sale_stays_until_sale_is_restored(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        record = ledger.return_sale(sale.id, {lamp.id: 2}).record
        ledger.delete_sale(sale.id, "voided")
        assert ledger.get_item(lamp.id).quantity == 100

        with pytest.raises(ConflictError):
            ledger.delete_sale_return(record.id, "entered twice")
        assert ledger.get_item(lamp.id).quantity == 100
        assert not ledger.get_sale_return(record.id).is_deleted

        ledger.restore_sale(sale.id)
        assert ledger.get_item(lamp.id).quantity == 97
        ledger.delete_sale_return(record.id, "entered twice")
        assert ledger.get_item(lamp.id).quantity == 95


class TestPurge:
    def test_active_sale_cannot_be_purged(self, discounted_sale, ledger):
        sale, _, _ = discounted_sale
        with pytest.raises(ConflictError):
            ledger.purge_sale(sale.id)
        assert ledger.get_sale(sale.id)

    def test_purging_sale_takes_its_returns(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        kept = ledger.return_sale(sale.id, {lamp.id: 1}).record
        cancelled = ledger.return_sale(sale.id, {lamp.id: 1}).record
        ledger.delete_sale_return(cancelled.id, "mistake")
        ledger.delete_sale(sale.id, "voided")
        on_hand = ledger.get_item(lamp.id).quantity

        purged = ledger.purge_sale(sale.id)

        assert sorted(purged) == sorted([kept.id, cancelled.id])
        assert ledger.list_sale_returns(include_deleted=True) == []
        assert ledger.get_item(lamp.id).quantity == on_hand
        with pytest.raises(NotFoundError):
            ledger.get_sale(sale.id)

    def test_only_deleted_returns_are_purged(self, discounted_sale, ledger):
        sale, lamp, _ = discounted_sale
        record = ledger.return_sale(sale.id, {lamp.id: 1}).record
        with pytest.raises(ConflictError):
            ledger.purge_sale_return(record.id)

        ledger.delete_sale_return(record.id, "mistake")
        ledger.purge_sale_return(record.id)
        with pytest.raises(NotFoundError):
            ledger.get_sale_return(record.id)
        assert ledger.returnable_quantities(sale.id)[lamp.id] == 5
