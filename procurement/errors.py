"""
Domain error taxonomy.

Services raise these; routers let them propagate and the app-level handler
in main.py turns them into `{"error": <kind>, "message": ...}` responses.
The `kind` strings are part of the public API — clients branch on them.
"""


class ProcurementError(Exception):
    kind = "procurement_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ProcurementError):
    """Bad input, including merging an entity into itself."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(ProcurementError):
    kind = "not_found"
    status_code = 404


class ConflictError(ProcurementError):
    """The entity exists but the operation would break an invariant."""

    kind = "conflict"
    status_code = 409


class StorageError(ProcurementError):
    """The transaction could not be written or committed."""

    kind = "storage_error"
    status_code = 500
