"""
Error taxonomy for provider clients and record-store services.

Provider errors (APIError and subclasses) describe what went wrong talking to
an upstream API and whether the request may be retried. Domain errors
(EntityNotFoundError, ConflictError) come from the CRUD services and map onto
404/409 responses. RateLimitTimeout is raised when our own limiter refuses to
admit a request in time, so callers can tell self-throttling apart from an
upstream outage.
"""

from typing import Optional, Dict, Any


class APIError(Exception):
    """
    Base exception for all upstream API errors.

    Attributes:
        message: Human-readable error description
        source: Provider name (e.g., 'sec-edgar', 'wikidata')
        status_code: HTTP status code when a response was received
        response_data: Raw response payload for debugging
        retryable: Whether the resilient client may retry the request
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.response_data = response_data
        self.retryable = retryable

    def __str__(self) -> str:
        parts = [self.message]
        if self.source:
            parts.insert(0, f"[{self.source}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class TransportError(APIError):
    """
    No response was received: connection failure, DNS error or timeout.

    Always retryable.
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message=message, source=source, retryable=True)


class RetryableError(APIError):
    """Upstream answered with a 5xx status."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=True,
        )


class RateLimitError(APIError):
    """
    Upstream throttled us (HTTP 429).

    Retryable; retry_after carries the Retry-After header when one was sent.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=429,
            response_data=response_data,
            retryable=True,
        )
        self.retry_after = retry_after


class FatalError(APIError):
    """Non-retryable upstream error (4xx other than 429)."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=False,
        )


class AuthenticationError(FatalError):
    """Invalid or missing credentials (HTTP 401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed - check API key",
        source: Optional[str] = None,
        status_code: int = 401,
        response_data: Optional[Any] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=status_code, response_data=response_data
        )


class NotFoundError(FatalError):
    """Upstream resource does not exist (HTTP 404)."""

    def __init__(
        self,
        message: str = "Resource not found",
        source: Optional[str] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=404, response_data=response_data
        )


class ConfigurationError(FatalError):
    """A required setting (usually an API key) is not configured."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        missing_config: Optional[str] = None,
    ):
        super().__init__(message=message, source=source)
        self.missing_config = missing_config


class ValidationError(FatalError):
    """Upstream rejected the request parameters (HTTP 400/422)."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: int = 400,
        response_data: Optional[Any] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
        )


class RateLimitTimeout(Exception):
    """Raised when the local rate limiter cannot admit a request in time."""

    def __init__(self, key: str, waited_ms: Optional[int] = None):
        message = f"Rate limit wait timed out for '{key}'"
        if waited_ms is not None:
            message += f" after {waited_ms}ms"
        super().__init__(message)
        self.key = key
        self.waited_ms = waited_ms


# =============================================================================
# Domain errors
# =============================================================================


class DomainError(Exception):
    """Base class for record-store errors surfaced to API clients."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntityNotFoundError(DomainError):
    """Requested record does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} with ID {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(DomainError):
    """Record would violate a uniqueness rule (e.g. duplicate slug)."""

    status_code = 409


def classify_http_error(
    status_code: int,
    response_text: str = "",
    source: Optional[str] = None,
    retry_after: Optional[str] = None,
) -> APIError:
    """
    Classify an HTTP error status into the appropriate APIError subclass.

    429 and 5xx are retryable; every other status is fatal.
    """
    snippet = response_text[:200]
    if status_code == 429:
        seconds = int(retry_after) if retry_after and retry_after.isdigit() else None
        return RateLimitError(
            message=f"Rate limited: {snippet}", source=source, retry_after=seconds
        )
    elif status_code in (401, 403):
        return AuthenticationError(
            message=f"Access denied: {snippet}", source=source, status_code=status_code
        )
    elif status_code == 404:
        return NotFoundError(message=f"Not found: {snippet}", source=source)
    elif status_code in (400, 422):
        return ValidationError(
            message=f"Invalid request: {snippet}", source=source, status_code=status_code
        )
    elif status_code >= 500:
        return RetryableError(
            message=f"Server error: {snippet}",
            source=source,
            status_code=status_code,
        )
    else:
        return FatalError(
            message=f"HTTP error {status_code}: {snippet}",
            source=source,
            status_code=status_code,
        )


def is_not_found(error: BaseException) -> bool:
    """True for upstream 404s, which provider clients map to empty results."""
    return isinstance(error, APIError) and error.status_code == 404
