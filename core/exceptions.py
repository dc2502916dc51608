"""
Domain exceptions for the embassy student portal.

Services raise these; app.py maps them to HTTP responses.

Usage:
    from core.exceptions import NotPending, RecipientNotFound

    if document.status != DocumentStatus.PENDING:
        raise NotPending(document.id, document.status.value)
"""
from typing import Optional, Any, Dict


class PortalError(Exception):
    """Base exception for all portal errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "detail": self.message,
            "details": self.details
        }


class ValidationError(PortalError):
    """Empty required field, password mismatch, bad enum value..."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else None
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class NotFoundError(PortalError):
    """Requested record does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found" if identifier is None else f"{resource} not found: {identifier}"
        super().__init__(message, code="NOT_FOUND", details={"resource": resource})


class RecipientNotFound(NotFoundError):
    """E-mail lookup for a message recipient matched no user."""

    def __init__(self, email: Optional[str] = None):
        super().__init__("Recipient", email)
        self.code = "RECIPIENT_NOT_FOUND"


class PermissionDenied(PortalError):
    """Caller is not allowed to perform the action."""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, code="PERMISSION_DENIED")


class NotPending(PortalError):
    """Document review attempted on a document that is no longer pending."""

    status_code = 409

    def __init__(self, document_id: Any, current_status: str):
        super().__init__(
            f"Document {document_id} is not pending (current status: {current_status})",
            code="NOT_PENDING",
            details={"document_id": str(document_id), "status": current_status}
        )
        self.current_status = current_status


class StoreError(PortalError):
    """A database or object storage call failed."""

    status_code = 503

    def __init__(self, operation: str, original: Optional[Exception] = None):
        message = f"Storage operation failed: {operation}"
        super().__init__(message, code="STORE_ERROR", details={"operation": operation})
        self.original = original
