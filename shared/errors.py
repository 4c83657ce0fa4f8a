"""
Shared error handling for the resource cache.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class ResourceCacheException(Exception):
    """Base exception for the resource cache and its loaders."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class CacheConfigurationError(ResourceCacheException):
    """Cache wiring errors, e.g. no loader available for a key."""

    def __init__(self, message: str = "Cache misconfigured", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_CONFIGURATION_ERROR", message, details)


class LoaderError(ResourceCacheException):
    """A loader returned something the cache cannot store."""

    def __init__(self, message: str = "Loader failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("LOADER_ERROR", message, details)


class ExternalServiceError(ResourceCacheException):
    """External service errors.

    ``data`` mirrors the error payload returned by the API
    (``{"statusMessage": ...}``) so callers can surface the server's own
    message.
    """

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
        self.service = service
        self.data = data or {}


class ResourceRequestError(ResourceCacheException):
    """The API rejected a request with a 4xx status.

    Kept apart from ExternalServiceError so that client errors such as a
    missing purchase order do not count against the circuit breaker.
    """

    def __init__(
        self,
        message: str = "Request rejected",
        details: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("RESOURCE_REQUEST_ERROR", message, details)
        self.data = data or {}
