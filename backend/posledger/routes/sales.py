# Overview: Flask API routes for sales and sale returns; parses input and returns JSON responses.

"""
Sales Routes

Sale returns are created under the sale they belong to
(POST /api/sales/<id>/returns). Cancelling or restoring a return goes
through /api/sale-returns/<id>.
"""

from flask import Blueprint, jsonify, request

from ..models import Discount
from ..models.sales import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE
from ..validation import LedgerError, ValidationError, parse_cents, parse_quantity, parse_quantity_map
from .deps import error_response, get_ledger, include_deleted_arg, internal_error, json_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
sale_returns_bp = Blueprint("sale_returns", __name__, url_prefix="/api/sale-returns")


def _parse_lines(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("lines must be a non-empty list")
    lines = []
    for index, line in enumerate(raw):
        if not isinstance(line, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        lines.append({
            "item_id": line.get("item_id"),
            "quantity": parse_quantity(f"lines[{index}].quantity", line.get("quantity")),
            "unit_price_cents": parse_cents(
                f"lines[{index}].unit_price_cents", line.get("unit_price_cents"), required=False
            ),
        })
    return lines


def _parse_discount(raw) -> Discount | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("discount must be an object")
    kind = str(raw.get("kind") or DISCOUNT_PERCENTAGE).upper()
    if kind not in (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED):
        raise ValidationError(f"Unknown discount kind {kind!r}")
    return Discount(kind=kind, value=parse_cents("discount.value", raw.get("value"), required=False, default=0))


@sales_bp.get("")
def list_sales_route():
    sales = get_ledger().list_sales(include_deleted=include_deleted_arg(request.args))
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "lines": [{"item_id": "...", "quantity": 2, "unit_price_cents": 1500?}],
        "discount": {"kind": "PERCENTAGE", "value": 1000}?,   // basis points or cents
        "customer_name": "...", "customer_phone": "...", "notes": "...", "created_by": "..."
    }

    Returns:
        {"sale": Sale, "stock_movements": [...]}
    """
    try:
        data = json_body()
        result = get_ledger().create_sale(
            lines=_parse_lines(data.get("lines")),
            discount=_parse_discount(data.get("discount")),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create sale")


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    try:
        ledger = get_ledger()
        sale = ledger.get_sale(sale_id)
        returns = ledger.list_sale_returns(sale_id=sale_id, include_deleted=True)
        return jsonify({"sale": sale.to_dict(), "returns": [r.to_dict() for r in returns]})
    except LedgerError as e:
        return error_response(e)


@sales_bp.get("/<sale_id>/returnable")
def returnable_route(sale_id: str):
    try:
        return jsonify({"sale_id": sale_id, "returnable": get_ledger().returnable_quantities(sale_id)})
    except LedgerError as e:
        return error_response(e)


@sales_bp.post("/<sale_id>/returns")
def create_sale_return_route(sale_id: str):
    """
    Return units from a sale.

    Request body: {"quantities": {"<item_id>": 2}, "created_by": "..."}
    or {"all": true} to return everything still outstanding.
    """
    try:
        data = json_body()
        ledger = get_ledger()
        if data.get("all") is True:
            result = ledger.return_all(sale_id, created_by=data.get("created_by"))
        else:
            result = ledger.return_sale(
                sale_id,
                parse_quantity_map("quantities", data.get("quantities")),
                created_by=data.get("created_by"),
            )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create sale return")


@sales_bp.post("/<sale_id>/delete")
def delete_sale_route(sale_id: str):
    try:
        data = json_body()
        sale = get_ledger().delete_sale(
            sale_id,
            data.get("reason"),
            restore_stock=data.get("restore_stock", True) is not False,
        )
        return jsonify(sale.to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete sale")


@sales_bp.post("/<sale_id>/restore")
def restore_sale_route(sale_id: str):
    try:
        return jsonify(get_ledger().restore_sale(sale_id).to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to restore sale")


@sale_returns_bp.post("/<return_id>/delete")
def delete_sale_return_route(return_id: str):
    try:
        data = json_body()
        return jsonify(get_ledger().delete_sale_return(return_id, data.get("reason")).to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete sale return")


@sale_returns_bp.post("/<return_id>/restore")
def restore_sale_return_route(return_id: str):
    try:
        return jsonify(get_ledger().restore_sale_return(return_id).to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to restore sale return")


@sales_bp.post("/<sale_id>/purge")
def purge_sale_route(sale_id: str):
    """Permanently remove a soft-deleted sale and its returns."""
    try:
        return_ids = get_ledger().purge_sale(sale_id)
        return jsonify({"purged": sale_id, "purged_returns": return_ids})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to purge sale")


@sale_returns_bp.post("/<return_id>/purge")
def purge_sale_return_route(return_id: str):
    try:
        record = get_ledger().purge_sale_return(return_id)
        return jsonify({"purged": record.id})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to purge sale return")
