"""
Point Cloud Annotator Backend: Custom Exception Hierarchy
===========================================================

What:  Application-specific exceptions for every failure class the API reports.
How:   Each exception carries a message, an optional context dict, the HTTP
       status it maps to and the machine-readable error code. The global
       handlers registered in main.py turn them into ErrorResponse bodies.
Who:   Raised by the store, the services and the proxy; caught by main.py.

Exception Hierarchy:
    AnnotatorError (base)
    ├── ValidationError            → 400 invalid_request
    ├── NotFoundError              → 404 not_found
    ├── InternalError              → 500 internal_error
    │   └── DatabaseError          → 500 internal_error
    └── ProxyError                 (gateway role only)
        ├── ConfigurationError     → 500 configuration_error
        ├── ServiceUnavailableError→ 503 service_unavailable
        └── BadGatewayError        → 502 proxy_error

Cache failures have no exception class: they are absorbed inside the cache
layer and never reach a client.
"""

from typing import Any, Dict, Optional


class AnnotatorError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(AnnotatorError):
    """
    Raised when client input violates a stated constraint.

    No mutation is ever attempted once this is raised.
    HTTP: 400 Bad Request
    """

    status_code = 400
    error_code = "invalid_request"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(AnnotatorError):
    """
    Raised when a well-formed request references a record that does not exist.

    A negative result, not a fault: handlers never log it as an error.
    HTTP: 404 Not Found
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource_id = resource_id


class InternalError(AnnotatorError):
    """
    Raised for server-side failures the client cannot fix.

    HTTP: 500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "An internal error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(InternalError):
    """
    Raised when a store operation fails unexpectedly.

    The message returned to the client is always generic; the driver error is
    logged server-side via `context` only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


# ── Gateway ───────────────────────────────────────────────────────────────


class ProxyError(AnnotatorError):
    """Base class for failures while forwarding a request to the handler."""

    status_code = 502
    error_code = "proxy_error"


class ConfigurationError(ProxyError):
    """
    The configured upstream URL cannot be used. The call is never attempted.

    HTTP: 500 Internal Server Error
    """

    status_code = 500
    error_code = "configuration_error"

    def __init__(
        self,
        message: str = "invalid handler URL configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ServiceUnavailableError(ProxyError):
    """
    The upstream refused or could not accept the connection.

    HTTP: 503 Service Unavailable
    """

    status_code = 503
    error_code = "service_unavailable"

    def __init__(
        self,
        message: str = "handler service is not available",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class BadGatewayError(ProxyError):
    """
    Any other transport failure, timeouts included.

    HTTP: 502 Bad Gateway
    """

    def __init__(
        self,
        message: str = "failed to reach handler service",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
