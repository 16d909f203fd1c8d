# backend/utils/errors.py
from typing import Dict, List, Optional


class InventoryError(Exception):
    """Base class for stock ledger failures that happen before any write.

    ``field_errors`` maps request field names to human readable messages so the
    client can show them next to the offending input.
    """

    status_code = 400

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}

    def to_dict(self) -> dict:
        body = {"success": False, "stock_changed": False, "message": self.message}
        if self.field_errors:
            body["field_errors"] = self.field_errors
        return body


class InvalidInput(InventoryError):
    status_code = 422


class NotFound(InventoryError):
    status_code = 404


class Unauthorized(InventoryError):
    status_code = 401


class InvariantViolation(InventoryError):
    status_code = 400


class StoreFailure(InventoryError):
    status_code = 500
