# Overview: Flask API routes for purchases, receipt payments and purchase returns.

from flask import Blueprint, jsonify, request

from ..validation import (
    LedgerError,
    ValidationError,
    parse_cents,
    parse_quantity,
    parse_quantity_map,
    require_text,
)
from .deps import error_response, get_ledger, include_deleted_arg, internal_error, json_body


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _parse_lines(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("lines must be a non-empty list")
    lines = []
    for index, line in enumerate(raw):
        if not isinstance(line, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        label = f"lines[{index}]"
        lines.append({
            "item_id": line.get("item_id"),
            "name": line.get("name"),
            "code": line.get("code"),
            "notes": line.get("notes"),
            "quantity": parse_quantity(f"{label}.quantity", line.get("quantity")),
            "cost_price_cents": parse_cents(f"{label}.cost_price_cents", line.get("cost_price_cents")),
            "retail_price_cents": parse_cents(
                f"{label}.retail_price_cents", line.get("retail_price_cents"), required=False
            ),
        })
    return lines


@purchases_bp.get("")
def list_purchases_route():
    purchases = get_ledger().list_purchases(
        supplier_id=request.args.get("supplier_id"),
        include_deleted=include_deleted_arg(request.args),
    )
    return jsonify({"items": [p.to_dict() for p in purchases], "count": len(purchases)})


@purchases_bp.post("")
def create_purchase_route():
    """
    Receive stock from a supplier.

    Request body:
    {
        "supplier_id": "...",                       // required
        "lines": [{"item_id": "...", "quantity": 5, "cost_price_cents": 1000,
                   "retail_price_cents": 1800?}],   // or "name" instead of item_id for a new item
        "paid_cents": 0,                            // optional, <= total
        "supplier_invoice_number": "...",           // optional
        "created_by": "..."                         // optional
    }
    """
    try:
        data = json_body()
        result = get_ledger().create_purchase(
            supplier_id=require_text("supplier_id", data.get("supplier_id")),
            lines=_parse_lines(data.get("lines")),
            paid_cents=parse_cents("paid_cents", data.get("paid_cents"), required=False, default=0),
            supplier_invoice_number=data.get("supplier_invoice_number"),
            created_by=data.get("created_by"),
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create purchase")


@purchases_bp.get("/<purchase_id>")
def get_purchase_route(purchase_id: str):
    try:
        return jsonify(get_ledger().get_purchase(purchase_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@purchases_bp.post("/<purchase_id>/payments")
def pay_purchase_route(purchase_id: str):
    """
    Pay against a receipt.

    Request body: {"amount_cents": 5000, "notes": "..."?, "created_by": "..."?}
    Overpayment is accepted; the response reports applied and excess parts.
    """
    try:
        data = json_body()
        result = get_ledger().pay_purchase(
            purchase_id,
            parse_cents("amount_cents", data.get("amount_cents")),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record payment")


@purchases_bp.post("/<purchase_id>/return")
def return_purchase_route(purchase_id: str):
    """
    Send purchased stock back to the supplier.

    Request body: {"quantities": {"<item_id>": 3}, "reason": "damaged"}
    Quantities are clamped to what was purchased and what is on hand.
    """
    try:
        data = json_body()
        result = get_ledger().return_purchase(
            purchase_id,
            parse_quantity_map("quantities", data.get("quantities")),
            data.get("reason"),
            created_by=data.get("created_by"),
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to return purchase")


@purchases_bp.post("/<purchase_id>/restore")
def restore_purchase_route(purchase_id: str):
    try:
        ledger = get_ledger()
        reversed_return = ledger.restore_purchase(purchase_id)
        return jsonify({
            "purchase": ledger.get_purchase(purchase_id).to_dict(),
            "reversed_return": reversed_return.to_dict() if reversed_return else None,
        })
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to restore purchase")


@purchases_bp.post("/<purchase_id>/purge")
def purge_purchase_route(purchase_id: str):
    """
    Permanently remove a returned receipt with its returns and payments.

    409 while removing it would change the supplier's debt or credit.
    """
    try:
        purchase = get_ledger().purge_purchase(purchase_id)
        return jsonify({"purged": purchase.id})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to purge purchase")
