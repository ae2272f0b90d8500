"""Structured exception classes for the Cakemail MCP client."""

import json
from typing import Any, Dict, Optional


class CakemailError(Exception):
    """Base exception for all Cakemail client errors.

    Every error surfaced by the request execution layer derives from this
    class so callers can tell configuration mistakes apart from transient
    outages by inspecting ``code`` and ``details`` alone.

    :param message: Human-readable error message
    :param code: Optional error code for programmatic handling
    :param details: Optional dictionary containing additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with message, code, and details."""
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.attempts: Optional[int] = None

    def tag_attempts(self, attempts: int) -> None:
        """Record how many attempts were made before this error surfaced.

        :param attempts: Number of attempts made by the retry manager
        """
        self.attempts = attempts
        self.details["attempts"] = attempts

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format.

        :return: Dictionary containing error code, message, and details
        """
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string.

        :return: JSON-encoded string representation of the exception
        """
        return json.dumps(self.to_dict(), default=str)


class AuthenticationError(CakemailError):
    """Raised when authentication fails.

    Covers bad credentials at the token endpoint, network failures while
    authenticating, an unrecoverable refresh, and a request that is still
    rejected with 401 after one transparent re-authentication.

    :param message: Description of the authentication failure
    :param response_body: Optional parsed body returned by the token endpoint
    :param status_code: Optional HTTP status code
    """

    def __init__(
        self,
        message: str,
        response_body: Optional[Any] = None,
        status_code: Optional[int] = None,
    ):
        """Initialize authentication error with message and optional body."""
        details: Dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body
        super().__init__(message=message, code="AUTHENTICATION_ERROR", details=details)
        self.status_code = status_code
        self.response_body = response_body


class NetworkError(CakemailError):
    """Raised for transport failures (connection refused, DNS, reset).

    :param message: Description of the network failure
    :param endpoint: Optional ``METHOD /path`` label of the failed call
    :param original_error: Optional underlying transport exception
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        """Initialize network error with endpoint and cause."""
        details: Dict[str, Any] = {}
        if endpoint:
            details["endpoint"] = endpoint
        if original_error is not None:
            details["original_error"] = str(original_error)
            details["error_type"] = type(original_error).__name__
        super().__init__(message=message, code="NETWORK_ERROR", details=details)
        self.endpoint = endpoint
        self.original_error = original_error


class RequestTimeoutError(NetworkError):
    """Raised when a call exceeds the per-call deadline.

    :param message: Description of the timeout
    :param endpoint: Optional ``METHOD /path`` label of the call
    :param timeout: Optional deadline in seconds that was exceeded
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize timeout error with endpoint and deadline."""
        super().__init__(message=message, endpoint=endpoint)
        self.code = "TIMEOUT_ERROR"
        self.timeout = timeout
        if timeout is not None:
            self.details["timeout"] = timeout


class ApiError(CakemailError):
    """Raised when the API answers with a non-2xx status.

    :param message: Description of the API error
    :param status_code: HTTP status code from the API response
    :param response_body: Parsed response body from the failed request
    :param endpoint: Optional ``METHOD /path`` label of the call
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[Any] = None,
        endpoint: Optional[str] = None,
    ):
        """Initialize API error with status, body, and endpoint."""
        details: Dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message=message, code="API_ERROR", details=details)
        self.status_code = status_code
        self.response_body = response_body
        self.endpoint = endpoint


class ApiValidationError(ApiError):
    """Raised for 400 and 422 responses (rejected request payloads)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.code = "VALIDATION_ERROR"


class NotFoundError(ApiError):
    """Raised for 404 responses."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.code = "NOT_FOUND"


class RateLimitError(ApiError):
    """Raised when the API answers 429.

    :param message: Description of the rate limit error
    :param retry_after: Optional seconds the server asked us to wait
    """

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        """Initialize rate limit error with optional Retry-After value."""
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.code = "RATE_LIMIT_ERROR"
        self.retry_after = retry_after
        if retry_after is not None:
            self.details["retry_after"] = retry_after


class ServerError(ApiError):
    """Raised for 5xx responses.

    :param retry_after: Optional seconds from a ``Retry-After`` header (503)
    """

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.code = "SERVER_ERROR"
        self.retry_after = retry_after
        if retry_after is not None:
            self.details["retry_after"] = retry_after


class InvalidResponseError(ApiError):
    """Raised when a successful response carries a body that cannot be parsed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.code = "INVALID_RESPONSE"


class CircuitOpenError(CakemailError):
    """Raised while the circuit breaker rejects calls without attempting them.

    :param message: Description of the rejection
    :param state: Breaker state at rejection time (``open`` or ``half_open``)
    :param endpoint: Optional label of the rejected call
    :param retry_in: Optional seconds until the breaker admits a trial call
    """

    def __init__(
        self,
        message: str,
        state: str = "open",
        endpoint: Optional[str] = None,
        retry_in: Optional[float] = None,
    ):
        """Initialize circuit open error with breaker context."""
        details: Dict[str, Any] = {"state": state}
        if endpoint:
            details["endpoint"] = endpoint
        if retry_in is not None:
            details["retry_in"] = round(retry_in, 3)
        super().__init__(message=message, code="CIRCUIT_OPEN", details=details)
        self.state = state
        self.endpoint = endpoint
        self.retry_in = retry_in


class ConfigurationError(CakemailError):
    """Raised for configuration-related errors.

    :param message: Description of the configuration error
    :param setting: Optional name of the problematic setting
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        """Initialize configuration error with message and optional setting."""
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details)


def _describe(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("error_description", "message", "detail", "error"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return fallback


def create_api_error(
    status_code: int,
    body: Any,
    endpoint: Optional[str] = None,
    reason: str = "",
    retry_after: Optional[float] = None,
) -> ApiError:
    """Map a non-2xx response to the matching structured error.

    :param status_code: HTTP status code of the response
    :param body: Parsed response body
    :param endpoint: ``METHOD /path`` label of the call
    :param reason: HTTP reason phrase, used when the body has no message
    :param retry_after: Parsed ``Retry-After`` value in seconds, if any
    :return: ApiError subclass instance carrying status, body, and endpoint
    """
    description = _describe(body, reason or "Request failed")
    message = f"API error {status_code} on {endpoint or 'request'}: {description}"
    kwargs: Dict[str, Any] = {
        "status_code": status_code,
        "response_body": body,
        "endpoint": endpoint,
    }

    if status_code in (400, 422):
        return ApiValidationError(message, **kwargs)
    if status_code == 404:
        return NotFoundError(message, **kwargs)
    if status_code == 429:
        return RateLimitError(message, retry_after=retry_after, **kwargs)
    if status_code >= 500:
        return ServerError(message, retry_after=retry_after, **kwargs)
    return ApiError(message, **kwargs)
