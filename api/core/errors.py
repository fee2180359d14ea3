"""
Caller-facing error classification.

Every failure reaching a client is rendered as `{"error": str, "details"?: str}`.
Which upstream failed is logged, not returned.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import status
from fastapi.responses import JSONResponse

from .upstream import UpstreamConnectionRefused, UpstreamError, UpstreamTimeout


class MissingCredential(RuntimeError):
    pass


class InvalidCredential(RuntimeError):
    pass


@dataclass(frozen=True)
class ErrorOutcome:
    status_code: int
    error: str
    details: str | None = None

    def body(self) -> dict[str, str]:
        payload = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body())


class DashboardHTTPError(Exception):
    """
    Raised by routes once a failure has been classified; rendered by the
    handler registered in `api/main.py`.
    """

    def __init__(self, outcome: ErrorOutcome) -> None:
        super().__init__(outcome.error)
        self.outcome = outcome


UNAUTHORIZED = ErrorOutcome(
    status_code=status.HTTP_401_UNAUTHORIZED,
    error="Authorization header is required",
    details="Please provide a valid bearer token",
)

SERVICE_UNAVAILABLE = ErrorOutcome(
    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    error="Service unavailable",
    details="One or more services are currently unavailable",
)

GATEWAY_TIMEOUT = ErrorOutcome(
    status_code=status.HTTP_504_GATEWAY_TIMEOUT,
    error="Request timeout",
    details="Service request timed out",
)

INTERNAL_ERROR = ErrorOutcome(
    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    error="Internal server error",
)


def classify(exc: Exception, *, failure_message: str) -> ErrorOutcome:
    """
    Map a credential or upstream failure to the outcome sent to the caller.

    `failure_message` is the operation-specific `error` text used for
    upstream failures that are neither refused connections nor timeouts.
    """
    if isinstance(exc, MissingCredential):
        return UNAUTHORIZED
    if isinstance(exc, InvalidCredential):
        return ErrorOutcome(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Token is not valid",
            details=str(exc) or None,
        )
    if isinstance(exc, UpstreamConnectionRefused):
        return SERVICE_UNAVAILABLE
    if isinstance(exc, UpstreamTimeout):
        return GATEWAY_TIMEOUT
    if isinstance(exc, UpstreamError):
        return ErrorOutcome(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error=failure_message,
            details=str(exc),
        )
    return INTERNAL_ERROR
