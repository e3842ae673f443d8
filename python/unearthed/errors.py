"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_PREMIUM_REQUIRED = "E_PREMIUM_REQUIRED"
    E_SYSTEM_ONLY = "E_SYSTEM_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_SOURCE_NOT_FOUND = "E_SOURCE_NOT_FOUND"
    E_PROFILE_NOT_FOUND = "E_PROFILE_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"

    # Quota errors (429)
    E_QUOTA_EXCEEDED = "E_QUOTA_EXCEEDED"

    # Server errors
    E_UPSTREAM_FAILURE = "E_UPSTREAM_FAILURE"  # 502
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_CONFIGURATION = "E_CONFIGURATION"  # 500
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_PREMIUM_REQUIRED: 403,
    ApiErrorCode.E_SYSTEM_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_SOURCE_NOT_FOUND: 404,
    ApiErrorCode.E_PROFILE_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_QUOTA_EXCEEDED: 429,
    ApiErrorCode.E_UPSTREAM_FAILURE: 502,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_CONFIGURATION: 500,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class UnauthenticatedError(ApiError):
    """No identity, or an identity that could not be verified."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_UNAUTHENTICATED,
        message: str = "Authentication required",
    ):
        super().__init__(code, message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class UpstreamError(ApiError):
    """An external service (delivery target, identity provider, AI provider) failed."""

    def __init__(
        self,
        message: str = "Upstream service failure",
        service: str | None = None,
        status: int | None = None,
    ):
        self.service = service
        self.upstream_status = status
        super().__init__(ApiErrorCode.E_UPSTREAM_FAILURE, message)


class ConfigurationError(ApiError):
    """A required secret, setting, or encryption key is missing. Never retried."""

    def __init__(self, message: str = "Service misconfigured"):
        super().__init__(ApiErrorCode.E_CONFIGURATION, message)


class QuotaExceededError(ApiError):
    """AI usage cap reached."""

    def __init__(self, message: str = "AI usage quota exceeded"):
        super().__init__(ApiErrorCode.E_QUOTA_EXCEEDED, message)
