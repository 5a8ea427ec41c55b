"""
Errors raised by the scan simulator, the threat workflow and the record store.

Each one maps to an HTTP status and a machine-readable ``code`` so the
dashboard error handler can render it without knowing where it came from.
``retryable`` marks failures a client may simply try again (storage hiccups),
as opposed to requests that will fail the same way every time.
"""
from typing import Any, Dict, Optional

class ScannerError(Exception):
    status_code = 400
    code = "scanner_error"
    retryable = False

    def __init__(self, message: str = "", *, details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.message = message or self.code.replace("_", " ").capitalize()
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.retryable:
            err["retryable"] = True
        if self.details:
            err["details"] = self.details
        return {"ok": False, "error": err}


class ValidationError(ScannerError):     status_code = 422; code = "validation_error"
class AuthorizationError(ScannerError):  status_code = 403; code = "upgrade_required"    # tier gate
class PreconditionError(ScannerError):   status_code = 409; code = "precondition_failed" # wrong state
class NotFoundError(ScannerError):       status_code = 404; code = "not_found"
class ServerError(ScannerError):         status_code = 500; code = "server_error"

class PersistenceError(ScannerError):
    status_code = 503
    code = "persistence_error"
    retryable = True
