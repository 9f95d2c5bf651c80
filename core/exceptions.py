# PATH: core/exceptions.py
"""
Typed exceptions for TRACE.

Transient upstream failures are kept apart from real execution outcomes:
UpstreamUnavailable may be retried by the caller, SimulationRejected may not.
"""

from typing import Optional

from core.constants import ErrorCode


class TraceError(Exception):
    """Base exception for TRACE."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class UpstreamUnavailable(TraceError):
    """Transport failure, timeout or server-side error from an upstream."""

    retryable = True

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INFRA_TRANSPORT,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class SimulationRejected(TraceError):
    """
    The node understood the request and rejected it.

    Carries the node's diagnostics verbatim (HTTP status, error_code,
    vm_error_code, message). Not retried.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: Optional[str] = None,
        vm_error_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, ErrorCode.NODE_REJECTED, details)
        self.status_code = status_code
        self.error_code = error_code
        self.vm_error_code = vm_error_code
        self.details.setdefault("status_code", status_code)
        self.details.setdefault("error_code", error_code)
        self.details.setdefault("vm_error_code", vm_error_code)


class QuoteUnavailable(TraceError):
    """Oracle has no usable quote for the asset."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.QUOTE_UNAVAILABLE,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class MalformedIntent(TraceError):
    """Caller-constructed intent failed local validation."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INTENT_MALFORMED, details)
