# Overview: Flask API routes for stocked items; receiving and deducting stock.

from flask import Blueprint, jsonify, request

from ..validation import LedgerError, parse_cents, parse_quantity, require_text
from .deps import error_response, get_ledger, include_deleted_arg, internal_error, json_body


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/items")


@inventory_bp.get("")
def list_items_route():
    ledger = get_ledger()
    items = ledger.list_items(include_deleted=include_deleted_arg(request.args))
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})


@inventory_bp.post("")
def create_item_route():
    """
    Create a stocked item.

    Request body:
    {
        "name": "Blue Mug",          // required
        "code": "100200",            // optional, generated when omitted
        "retail_price_cents": 1500,  // optional
        "unit_cost_cents": 700,      // optional opening cost
        "quantity": 10,              // optional opening quantity
        "description": "..."         // optional
    }
    """
    try:
        data = json_body()
        item = get_ledger().create_item(
            name=require_text("name", data.get("name")),
            code=data.get("code"),
            description=data.get("description"),
            retail_price_cents=parse_cents("retail_price_cents", data.get("retail_price_cents"), required=False, default=0),
            unit_cost_cents=parse_cents("unit_cost_cents", data.get("unit_cost_cents"), required=False, default=0),
            quantity=parse_quantity("quantity", data.get("quantity"), required=False, default=0),
        )
        return jsonify(item.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create item")


@inventory_bp.get("/<item_id>")
def get_item_route(item_id: str):
    try:
        return jsonify(get_ledger().get_item(item_id).to_dict())
    except LedgerError as e:
        return error_response(e)


@inventory_bp.patch("/<item_id>")
def update_item_route(item_id: str):
    """
    Edit an item's name, code, description or retail price.

    Omitted fields are unchanged. Quantity and cost are not editable here.
    """
    try:
        data = json_body()
        item = get_ledger().update_item(
            item_id,
            name=data.get("name"),
            code=data.get("code"),
            description=data.get("description"),
            retail_price_cents=parse_cents("retail_price_cents", data.get("retail_price_cents"), required=False),
        )
        return jsonify(item.to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update item")


@inventory_bp.post("/<item_id>/receive")
def receive_route(item_id: str):
    """
    Receive units at a unit cost; the item's WAC is re-averaged.

    Request body: {"quantity": 5, "unit_cost_cents": 1000, "retail_price_cents": 1800?}
    """
    try:
        data = json_body()
        item = get_ledger().receive(
            item_id,
            parse_quantity("quantity", data.get("quantity")),
            parse_cents("unit_cost_cents", data.get("unit_cost_cents")),
            retail_price_cents=parse_cents("retail_price_cents", data.get("retail_price_cents"), required=False),
        )
        return jsonify(item.to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to receive stock")


@inventory_bp.post("/<item_id>/deduct")
def deduct_route(item_id: str):
    """Deduct units, clamped at zero. The response shows requested and applied."""
    try:
        data = json_body()
        movement = get_ledger().deduct(item_id, parse_quantity("quantity", data.get("quantity")))
        return jsonify(movement.to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to deduct stock")


@inventory_bp.post("/<item_id>/delete")
def delete_item_route(item_id: str):
    try:
        data = json_body()
        item = get_ledger().delete_item(item_id, data.get("reason"))
        return jsonify(item.to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete item")


@inventory_bp.post("/<item_id>/restore")
def restore_item_route(item_id: str):
    try:
        return jsonify(get_ledger().restore_item(item_id).to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to restore item")


@inventory_bp.post("/<item_id>/purge")
def purge_item_route(item_id: str):
    """Permanently remove a soft-deleted item."""
    try:
        item = get_ledger().purge_item(item_id)
        return jsonify({"purged": item.id})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to purge item")
