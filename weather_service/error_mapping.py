"""Error taxonomy mapping.

Provides:
- Exception hierarchy with stable ErrorCode mapping.
- Classified upstream failures carrying a FailureKind used by retry and circuit policies.
- Marshal function to produce structured ErrorPayload and an HTTP status.
- Metrics counters per error code.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import ErrorCode, ErrorPayload, error_response
from .metrics import ERRORS


class FailureKind(str, Enum):
    """Classification of an upstream failure."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    TIMEOUT = "timeout"
    BAD_RESPONSE = "bad_response"
    UNEXPECTED = "unexpected"


@dataclass(eq=False)
class WeatherServiceError(Exception):
    code: ErrorCode
    detail: str = ""

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code.value}: {self.detail}" if self.detail else self.code.value


class ValidationError(WeatherServiceError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, detail)


class AuthFailedError(WeatherServiceError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.AUTH_FAILED, detail)


class PermissionDeniedError(WeatherServiceError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.PERMISSION_DENIED, detail)


class ConfigurationError(WeatherServiceError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.CONFIGURATION_ERROR, detail)


class InternalError(WeatherServiceError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.INTERNAL, detail)


class UpstreamError(WeatherServiceError):
    """A classified failure reported by the upstream weather provider."""

    kind: FailureKind = FailureKind.UNEXPECTED
    error_code: ErrorCode = ErrorCode.UPSTREAM_SERVER_ERROR

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(self.error_code, detail)
        self.status_code = status_code


class UpstreamNotFoundError(UpstreamError):
    kind = FailureKind.NOT_FOUND
    error_code = ErrorCode.UPSTREAM_NOT_FOUND


class UpstreamAuthError(UpstreamError):
    kind = FailureKind.UNAUTHORIZED
    error_code = ErrorCode.UPSTREAM_AUTH


class UpstreamClientError(UpstreamError):
    kind = FailureKind.CLIENT_ERROR
    error_code = ErrorCode.UPSTREAM_CLIENT_ERROR


class UpstreamServerError(UpstreamError):
    kind = FailureKind.SERVER_ERROR
    error_code = ErrorCode.UPSTREAM_SERVER_ERROR


class UpstreamTimeoutError(UpstreamError):
    kind = FailureKind.TIMEOUT
    error_code = ErrorCode.UPSTREAM_TIMEOUT


class UpstreamNetworkError(UpstreamError):
    kind = FailureKind.NETWORK
    error_code = ErrorCode.UPSTREAM_NETWORK


class UpstreamResponseError(UpstreamError):
    kind = FailureKind.BAD_RESPONSE
    error_code = ErrorCode.UPSTREAM_BAD_RESPONSE


class CircuitOpenError(WeatherServiceError):
    def __init__(self, operation: str, retry_after_s: float = 0.0) -> None:
        super().__init__(ErrorCode.CIRCUIT_OPEN, f"circuit for '{operation}' is open")
        self.operation = operation
        self.retry_after_s = retry_after_s


class ServiceUnavailableError(WeatherServiceError):
    def __init__(self, detail: str = "", cause: BaseException | None = None) -> None:
        super().__init__(ErrorCode.SERVICE_UNAVAILABLE, detail)
        self.cause = cause


class ComputeFailedError(WeatherServiceError):
    """Populating a cache entry failed; nothing was cached."""

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(ErrorCode.COMPUTE_FAILED, f"failed to compute value for key '{key}': {cause}")
        self.key = key
        self.cause = cause


class CacheTierError(WeatherServiceError):
    def __init__(self, tier: str, operation: str, detail: str = "") -> None:
        message = f"{tier} {operation} failed"
        super().__init__(ErrorCode.CACHE_TIER_ERROR, f"{message}: {detail}" if detail else message)
        self.tier = tier
        self.operation = operation


_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.AUTH_FAILED: 401,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.UPSTREAM_NOT_FOUND: 404,
    ErrorCode.UPSTREAM_AUTH: 502,
    ErrorCode.UPSTREAM_CLIENT_ERROR: 502,
    ErrorCode.UPSTREAM_SERVER_ERROR: 502,
    ErrorCode.UPSTREAM_BAD_RESPONSE: 502,
    ErrorCode.UPSTREAM_TIMEOUT: 503,
    ErrorCode.UPSTREAM_NETWORK: 503,
    ErrorCode.CIRCUIT_OPEN: 503,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.CACHE_TIER_ERROR: 503,
}


def root_cause(exc: BaseException) -> BaseException:
    """Unwrap ComputeFailedError so the caller-facing error is the loader's failure."""
    while isinstance(exc, ComputeFailedError):
        exc = exc.cause
    return exc


def http_status_for(exc: BaseException) -> int:
    exc = root_cause(exc)
    if isinstance(exc, WeatherServiceError):
        return _HTTP_STATUS.get(exc.code, 500)
    return 500


def marshal_exception(exc: Exception) -> ErrorPayload:
    """Map any exception to ErrorPayload and increment per-code metrics.

    ComputeFailedError is reported through its cause. Unknown exceptions map to INTERNAL.
    """
    exc = root_cause(exc)
    if isinstance(exc, WeatherServiceError):
        code = exc.code
        detail = exc.detail
    else:
        code = ErrorCode.INTERNAL
        detail = str(exc)
    ERRORS.labels(code=code.value).inc()
    return error_response(code, detail)
