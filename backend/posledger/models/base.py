from __future__ import annotations

from datetime import datetime
from typing import Any

from ..time_utils import parse_iso_datetime, to_utc_z, utcnow


class SoftDeleteMixin:
    """
    Soft-delete bookkeeping shared by every record family.

    Records are never removed by the ledger itself; they are marked inactive
    with a reason and timestamp and stay in their collection until an
    explicit empty-bin action.
    """

    is_deleted: bool
    deletion_reason: str | None
    deleted_at: datetime | None

    def mark_deleted(self, reason: str | None, at: datetime | None = None) -> None:
        self.is_deleted = True
        self.deletion_reason = reason
        self.deleted_at = at or utcnow()

    def mark_restored(self) -> None:
        self.is_deleted = False
        self.deletion_reason = None
        self.deleted_at = None

    def _soft_delete_dict(self) -> dict:
        return {
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "deleted_at": to_utc_z(self.deleted_at),
        }


def soft_delete_kwargs(data: dict) -> dict:
    return {
        "is_deleted": bool(data.get("is_deleted", False)),
        "deletion_reason": data.get("deletion_reason"),
        "deleted_at": parse_datetime(data.get("deleted_at")),
    }


def parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso_datetime(str(value))


def as_int(value: Any, default: int = 0) -> int:
    """Lenient int conversion for stored payloads (imports may hold floats)."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        return int(round(value))
    return int(value)
