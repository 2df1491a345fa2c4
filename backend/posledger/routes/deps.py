# Overview: Shared route helpers; per-request ledger service and error-to-status mapping.

from flask import current_app, g, jsonify, request

from ..services.ledger_service import LedgerPolicy, LedgerService
from ..services.record_store import SqlRecordStore
from ..validation import ConflictError, LedgerError, NotFoundError, ReturnQuantityError, ValidationError


def get_ledger() -> LedgerService:
    """LedgerService for the current request, loaded from the database once."""
    if "ledger" not in g:
        store = SqlRecordStore(attempts=current_app.config.get("COMMIT_RETRY_ATTEMPTS", 3))
        g.ledger = LedgerService(store, LedgerPolicy.from_config(current_app.config))
    return g.ledger


def error_response(e: LedgerError):
    """Map a domain error to a JSON error body and HTTP status."""
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    if isinstance(e, ReturnQuantityError):
        return jsonify({
            "error": str(e),
            "item_id": e.item_id,
            "requested": e.requested,
            "available": e.available,
        }), 400
    return jsonify({"error": str(e)}), 400


def json_body() -> dict:
    """Request JSON as a dict; a missing body is empty, any other non-object is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def include_deleted_arg(args) -> bool:
    return args.get("include_deleted", "false").lower() == "true"


def release_ledger(exc=None):
    g.pop("ledger", None)
