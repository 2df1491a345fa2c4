# Overview: Flask API routes for suppliers; balances, statements and credit settlement.

"""
Supplier Routes

Balances are read-only here: they change through purchases, receipt
payments, purchase returns and credit settlements.
"""

from flask import Blueprint, jsonify, request

from ..validation import LedgerError, parse_cents, require_text
from .deps import error_response, get_ledger, include_deleted_arg, internal_error, json_body


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
def list_suppliers_route():
    suppliers = get_ledger().list_suppliers(include_deleted=include_deleted_arg(request.args))
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)})


@suppliers_bp.post("")
def create_supplier_route():
    """
    Create a supplier. An active supplier with the same name is returned as is.

    Request body: {"name": "...", "phone": "..."?, "tax_number": "..."?}
    """
    try:
        data = json_body()
        supplier = get_ledger().create_supplier(
            name=require_text("name", data.get("name")),
            phone=data.get("phone"),
            tax_number=data.get("tax_number"),
        )
        return jsonify(supplier.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create supplier")


@suppliers_bp.get("/<supplier_id>")
def get_supplier_route(supplier_id: str):
    """Supplier with its receipts, payments and purchase returns."""
    try:
        return jsonify(get_ledger().supplier_statement(supplier_id))
    except LedgerError as e:
        return error_response(e)


@suppliers_bp.delete("/<supplier_id>")
def delete_supplier_route(supplier_id: str):
    """409 while the supplier still has debt or unsettled credit."""
    try:
        data = json_body()
        supplier = get_ledger().delete_supplier(supplier_id, data.get("reason"))
        return jsonify(supplier.to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete supplier")


@suppliers_bp.post("/<supplier_id>/restore")
def restore_supplier_route(supplier_id: str):
    try:
        return jsonify(get_ledger().restore_supplier(supplier_id).to_dict())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to restore supplier")


@suppliers_bp.post("/<supplier_id>/settle-credit")
def settle_credit_route(supplier_id: str):
    """
    Record cash the supplier paid back against its credit.

    Request body: {"amount_cents": 2000, "notes": "..."?}
    """
    try:
        data = json_body()
        result = get_ledger().settle_credit(
            supplier_id,
            parse_cents("amount_cents", data.get("amount_cents")),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to settle supplier credit")
