"""Error taxonomy shared by the report pipeline.

Every failure carries a stable machine-readable ``code`` (the class name) and
a human-readable message. The HTTP status is attached here so the single
exception handler in ``main`` can translate any of them without a lookup
table.
"""

from typing import Any, Dict


class ReportServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(ReportServiceError):
    """Bad request parameters; raised before any I/O."""

    status_code = 400


class UnsupportedTemplateError(ReportServiceError):
    status_code = 400

    def __init__(self, template: str):
        super().__init__(f"Unsupported report template: {template!r}")
        self.template = template


class NotFoundError(ReportServiceError):
    status_code = 404


class InvalidStateError(ReportServiceError):
    """Operation not allowed in the report's current status."""

    status_code = 409


class PayloadTooLargeError(ReportServiceError):
    status_code = 413


class PathTraversalError(ReportServiceError):
    status_code = 400


class StorageUnavailableError(ReportServiceError):
    status_code = 503


class StorageTimeoutError(ReportServiceError):
    status_code = 504
