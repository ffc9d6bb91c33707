"""
HR error taxonomy.

Every failure the HR pipeline raises deliberately is an ``HrError``; the
FastAPI handlers in ``app.main`` map ``status_code``/``code`` onto the
``{error, message, code}`` response envelope.
"""
from __future__ import annotations


class HrError(Exception):
    status_code: int = 500
    code: str = "HR_ERROR"
    error: str = "HR error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_payload(self) -> dict:
        return {"error": self.error, "message": self.message, "code": self.code}


class HrValidationError(HrError):
    """Malformed or out-of-range input. Raised before any aggregation runs."""
    status_code = 400
    code = "HR_VALIDATION_ERROR"
    error = "Validation error"


class HrComplianceError(HrValidationError):
    """Input or output that would expose person-level data."""
    code = "HR_COMPLIANCE_ERROR"
    error = "Compliance violation"


class HrAuthError(HrError):
    """Missing credentials (401) or cross-tenant access (403)."""
    status_code = 401
    code = "UNAUTHENTICATED"
    error = "Unauthorized"

    def __init__(self, message: str, *, status_code: int = 401, code: str | None = None):
        super().__init__(message, code=code)
        self.status_code = status_code
        if status_code == 403:
            self.error = "Forbidden"
            if code is None:
                self.code = "FORBIDDEN"


class HrNotFoundError(HrError):
    status_code = 404
    code = "NOT_FOUND"
    error = "Not found"


class HrInternalError(HrError):
    """Programming error inside the pipeline. Detail is logged, never returned."""
    status_code = 500
    code = "HR_INTERNAL_ERROR"
    error = "Internal server error"

    def to_payload(self) -> dict:
        return {"error": self.error, "code": self.code}
