"""Structured error codes for the weather service."""

from enum import Enum
from typing import TypedDict


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "validation_error"
    AUTH_FAILED = "authentication_failed"
    PERMISSION_DENIED = "permission_denied"
    UPSTREAM_NOT_FOUND = "upstream_not_found"
    UPSTREAM_AUTH = "upstream_auth_failed"
    UPSTREAM_CLIENT_ERROR = "upstream_client_error"
    UPSTREAM_SERVER_ERROR = "upstream_server_error"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_NETWORK = "upstream_network_error"
    UPSTREAM_BAD_RESPONSE = "upstream_bad_response"
    CIRCUIT_OPEN = "circuit_open"
    SERVICE_UNAVAILABLE = "service_unavailable"
    COMPUTE_FAILED = "compute_failed"
    CACHE_TIER_ERROR = "cache_tier_error"
    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL = "internal_error"


class ErrorPayload(TypedDict):
    error: str
    detail: str


def error_response(code: ErrorCode, detail: str = "") -> ErrorPayload:
    return {"error": code.value, "detail": detail}
