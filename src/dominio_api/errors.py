from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    AUTH = "AuthError"
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    UPSTREAM = "UpstreamError"
    INTERNAL = "InternalError"


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int
    kind: ErrorKind = ErrorKind.INTERNAL
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)


class ValidationError(ApiError):
    def __init__(
        self,
        message: str = "Request validation failed",
        *,
        code: str = "ValidationError",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            kind=ErrorKind.VALIDATION,
            context=context or {},
        )


class EmptyBatchError(ValidationError):
    def __init__(self) -> None:
        super().__init__(
            "documents must be a non-empty array",
            code="EmptyBatch",
        )


class BatchTooLargeError(ValidationError):
    def __init__(self, *, limit: int, received: int) -> None:
        super().__init__(
            f"At most {limit} documents are accepted per batch",
            code="BatchTooLarge",
            context={"limit": limit, "received": received},
        )


class InvalidDocumentError(ValidationError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="InvalidDocument")


class AuthError(ApiError):
    def __init__(
        self,
        message: str = "Unauthorized",
        *,
        code: str = "Unauthorized",
        status_code: int = 401,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            kind=ErrorKind.AUTH,
        )


class MissingCredentialsError(AuthError):
    def __init__(self) -> None:
        super().__init__(
            "Missing authentication. Use Authorization header or X-API-Key.",
            code="MissingCredentials",
        )


class InvalidCredentialsError(AuthError):
    def __init__(self, message: str = "Invalid or expired credentials") -> None:
        super().__init__(message, code="InvalidCredentials")


class InvalidStateError(AuthError):
    def __init__(self) -> None:
        super().__init__(
            "State is invalid or expired",
            code="InvalidState",
            status_code=400,
        )


class TokenExchangeFailedError(AuthError):
    def __init__(self) -> None:
        super().__init__(
            "Failed to exchange authorization code for tokens",
            code="TokenExchangeFailed",
            status_code=500,
        )


class RefreshFailedError(AuthError):
    def __init__(self) -> None:
        super().__init__(
            "Failed to refresh access token",
            code="RefreshFailed",
            status_code=500,
        )


class NotFoundError(ApiError):
    def __init__(
        self,
        message: str = "Resource not found",
        *,
        code: str = "NotFound",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=404,
            kind=ErrorKind.NOT_FOUND,
            context=context or {},
        )


class ProtocolNotFoundError(NotFoundError):
    def __init__(self, protocol_id: str) -> None:
        super().__init__(
            "Protocol not found",
            code="ProtocolNotFound",
            context={"protocolId": protocol_id},
        )


class RateLimitError(ApiError):
    def __init__(self, *, limit: int, reset_seconds: int) -> None:
        super().__init__(
            code="RateLimited",
            message="Request rate exceeded allowed threshold",
            status_code=429,
            kind=ErrorKind.RATE_LIMITED,
            context={"limit": limit, "resetSeconds": reset_seconds},
        )


class UpstreamError(ApiError):
    """Failure talking to the accounting service.

    ``detail`` keeps the upstream specifics for logs; ``message`` is what
    callers of the gateway get to see.
    """

    def __init__(
        self,
        message: str = "Upstream service request failed",
        *,
        code: str = "UpstreamError",
        detail: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=500,
            kind=ErrorKind.UPSTREAM,
            context=context or {},
        )
        self.detail = detail


class UpstreamTimeoutError(UpstreamError):
    def __init__(self, *, timeout_ms: int, detail: str | None = None) -> None:
        super().__init__(
            f"Upstream request timed out after {timeout_ms}ms",
            code="Timeout",
            detail=detail,
        )
        self.timeout_ms = timeout_ms


class UpstreamTransportError(UpstreamError):
    def __init__(self, *, detail: str | None = None) -> None:
        super().__init__(
            "Upstream service is unreachable",
            code="UpstreamUnavailable",
            detail=detail,
        )


class StatusFetchFailedError(UpstreamError):
    def __init__(self, protocol_id: str, *, detail: str | None = None) -> None:
        super().__init__(
            "Failed to fetch status",
            code="StatusFetchFailed",
            detail=detail,
            context={"protocolId": protocol_id},
        )


class KeyValueStoreError(ApiError):
    def __init__(self, operation: str) -> None:
        super().__init__(
            code="InternalError",
            message="Unexpected server error",
            status_code=500,
            kind=ErrorKind.INTERNAL,
        )
        self.operation = operation
