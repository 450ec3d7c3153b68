"""
SeriCare Backend — Custom Exception Hierarchy
==============================================

What:  Defines application-specific exceptions for every failure kind the
       upload pipeline and the identity endpoints can produce.
Why:   Each kind maps to exactly one HTTP status and one machine-readable
       error code, so a single handler in main.py renders them all.
How:   Each exception class carries a message, an optional context dict,
       an `error_code` and a `status_code`.
Who:   Raised by services and dependencies; caught by the global handler.

Exception Hierarchy:
    SeriCareError (base)                 → 500 internal_error
    ├── UnauthenticatedError             → 401 unauthenticated
    ├── ValidationError                  → 400 validation_error
    ├── NotFoundError                    → 404 not_found
    ├── ConflictError                    → 409 conflict
    ├── ServiceUnavailableError          → 503 service_unavailable
    ├── ServiceError                     → 500 service_error
    ├── PersistenceError                 → 500 persistence_error
    ├── FileStorageError                 → 500 file_storage_error
    └── RateLimitExceededError           → 429 rate_limit_exceeded

ServiceUnavailableError and ServiceError are deliberately separate: the
first means "the classifier could not be reached, try again later", the
second means "this submission failed".
"""

from typing import Any, Dict, Optional


class SeriCareError(Exception):
    """
    Base exception for all SeriCare application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    error_code = "internal_error"
    status_code = 500
    # Whether `context` is safe to return as `details`; internal keys never are
    expose_details = False
    internal_context_keys = frozenset({"aborted_at", "error_type"})

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def to_response(self, request_id: str = "") -> Dict[str, Any]:
        """Error body in the shape every endpoint returns on failure."""
        body: Dict[str, Any] = {
            "success": False,
            "error": self.error_code,
            "message": self.message,
            "request_id": request_id,
        }
        if self.expose_details:
            body["details"] = {
                key: value for key, value in self.context.items() if key not in self.internal_context_keys
            }
        return body


class UnauthenticatedError(SeriCareError):
    """
    Raised when the bearer credential is missing, malformed, invalid or
    expired, or when login credentials do not match an account.
    HTTP: 401 Unauthorized
    """

    error_code = "unauthenticated"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ValidationError(SeriCareError):
    """
    Raised when client input fails validation.

    When:    Missing image, non-image content type, oversized file, bad
             pagination cursor, malformed request body.
    HTTP:    400 Bad Request

    Example response:
        {
            "success": false,
            "error": "validation_error",
            "message": "Only image files allowed",
            "details": {"field": "image", "content_type": "text/plain"}
        }
    """

    error_code = "validation_error"
    status_code = 400
    expose_details = True

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


class NotFoundError(SeriCareError):
    """
    Raised when a requested resource does not exist.

    When:    The subject of an otherwise valid bearer token has been deleted,
             or a stored image is requested that is not on disk.
    HTTP:    404 Not Found
    """

    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(SeriCareError):
    """
    Raised when signup collides with an existing account (email or phone).
    HTTP: 409 Conflict
    """

    error_code = "conflict"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ServiceUnavailableError(SeriCareError):
    """
    Raised when the inference endpoint refuses or cannot accept a connection.

    HTTP:    503 Service Unavailable
    The only classifier failure surfaced as "try again later". The stored
    image has already been removed by the time this reaches the client.
    """

    error_code = "service_unavailable"
    status_code = 503

    def __init__(
        self,
        message: str = "AI service unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ServiceError(SeriCareError):
    """
    Raised when the classifier was reached but the call did not produce a
    usable prediction: timeout, non-2xx status, malformed body, label outside
    {healthy, diseased}, confidence outside [0, 1].

    Also used by the orchestrator for unexpected failures inside the flow.
    HTTP:    500 Internal Server Error
    """

    error_code = "service_error"
    status_code = 500

    def __init__(
        self,
        message: str = "Error processing upload",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(SeriCareError):
    """
    Raised when the record store fails to write or read.

    Security Note:
        The message returned to the client is always generic. SQL, constraint
        names and driver errors go to `context` and are logged server-side only.
    HTTP:    500 Internal Server Error
    """

    error_code = "persistence_error"
    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(SeriCareError):
    """
    Raised when writing an accepted image to the upload directory fails
    (disk full, permission denied, I/O error).
    HTTP:    500 Internal Server Error
    """

    error_code = "file_storage_error"
    status_code = 500

    def __init__(
        self,
        message: str = "Failed to save uploaded image. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(SeriCareError):
    """
    Raised when a client exceeds the per-IP request rate limit.
    HTTP:    429 Too Many Requests (with Retry-After header)
    """

    error_code = "rate_limit_exceeded"
    status_code = 429
    expose_details = True

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests. Please wait {retry_after} seconds before retrying."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
