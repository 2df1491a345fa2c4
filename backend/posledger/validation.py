from __future__ import annotations

from typing import Any


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
# This prevents nonsensical amounts slipping in from client input
MAX_AMOUNT_CENTS = 999_999_999


class LedgerError(Exception):
    """Base class for domain errors raised by the ledger services."""


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""


class ReturnQuantityError(ValidationError):
    """A return asked for more units than are still returnable."""

    def __init__(self, item_id: str, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot return {requested} units of item {item_id}. "
            f"Available to return: {available}"
        )


class NotFoundError(LedgerError, LookupError):
    """404-level missing record."""

    def __init__(self, kind: str, record_id: Any):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (e.g., supplier with outstanding debt)."""


def _coerce_int(field: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_cents(field: str, value: Any, *, required: bool = True, default: int | None = None) -> int | None:
    """Strictly parse a non-negative money amount in cents."""
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return default
    cents = _coerce_int(field, value)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS} cents")
    return cents


def parse_quantity(field: str, value: Any, *, required: bool = True, default: int | None = None) -> int | None:
    """Strictly parse a non-negative unit quantity."""
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return default
    qty = _coerce_int(field, value)
    if qty < 0:
        raise ValidationError(f"{field} cannot be negative")
    return qty


def parse_quantity_map(field: str, value: Any) -> dict[str, int]:
    """Parse a JSON object of {item_id: quantity}."""
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object of item_id -> quantity")
    return {str(item_id): parse_quantity(f"{field}[{item_id}]", qty) for item_id, qty in value.items()}


def require_text(field: str, value: Any) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()
