# backend/posledger/routes/system.py
"""
System health and snapshot endpoints.

Export returns every ledger collection; import replaces them all from a
previously exported document.
"""

import time

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import StoredCollection
from ..time_utils import to_utc_z, utcnow
from ..validation import LedgerError
from .deps import error_response, get_ledger, internal_error

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        collection_count = db.session.query(StoredCollection).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"collections": collection_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), status_code


@system_bp.get("/system/export")
def export_snapshot_route():
    try:
        return jsonify(get_ledger().export_snapshot())
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to export snapshot")


@system_bp.post("/system/import")
def import_snapshot_route():
    """
    Replace every collection from an exported snapshot.

    Collections missing from the body are restored empty.
    """
    try:
        data = request.get_json(silent=True)
        counts = get_ledger().import_snapshot(data)
        return jsonify({"imported": counts})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to import snapshot")


@system_bp.post("/system/empty-bin")
def empty_bin_route():
    try:
        return jsonify({"purged": get_ledger().empty_bin()})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to empty recycle bin")
