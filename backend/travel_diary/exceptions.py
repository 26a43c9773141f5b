"""
TravelDiary Backend: Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for each failure the system can report.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers registered in main.py map them to HTTP status
       codes and a structured JSON body. Context is logged, and only selected
       keys (field lists) are returned to the client.
Who:   Raised by services, repositories, the capture session and the auth
       adapter; caught by the global handlers or by the calling UI layer.

Exception Hierarchy:
    TravelDiaryError (base)
    ├── ValidationError              → 400 Bad Request (client can fix)
    ├── AuthenticationError          → 401 Unauthorized
    ├── NotFoundError                → 404 Not Found
    ├── ImageProcessingError
    │   ├── ImageDecodeError         → 422 Unprocessable Entity
    │   └── ImageEncodeError         → 500 Internal Server Error
    ├── ResourceAcquisitionError     → camera / file access denied (client side)
    ├── PersistenceError             → 500 Internal Server Error
    └── AuthServiceUnavailableError  → 503 Service Unavailable

None of these are retried automatically. Every failure is terminal for the
current attempt and the caller re-initiates explicitly.
"""

from typing import Any, Dict, List, Optional


class TravelDiaryError(Exception):
    """
    Base exception for all TravelDiary application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, not returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(TravelDiaryError):
    """
    Raised when client input fails validation.

    What:    The request can be corrected by the client.
    When:    Missing userId, malformed location, non-numeric entry id,
             oversized or unsupported upload.
    HTTP:    400 Bad Request

    `errors` enumerates every invalid field with its reason, so a form can
    highlight all of them at once:

        {
            "error": "validation_error",
            "message": "Invalid entry data",
            "details": {"errors": [{"field": "location.lat", "message": "..."}]}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        self.errors: List[Dict[str, str]] = list(errors or [])
        if field and not self.errors:
            self.errors.append({"field": field, "message": message})
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(TravelDiaryError):
    """
    Raised when a request carries no bearer token or an invalid one.

    HTTP: 401 Unauthorized (with `WWW-Authenticate: Bearer`)
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(TravelDiaryError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown entry id, or a share token that is unknown or whose
             entry is not currently shared. The two token cases produce the
             same message so callers cannot probe for existence.
    HTTP:    404 Not Found
    """

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
        self.resource = resource
        self.resource_id = resource_id


class ImageProcessingError(TravelDiaryError):
    """
    Raised when an image cannot be normalized.

    Blocks the submission: no entry is created from a failed normalization.
    """

    def __init__(
        self,
        message: str = "The image could not be processed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ImageDecodeError(ImageProcessingError):
    """The input bytes are corrupt or not an image Pillow can read."""

    def __init__(
        self,
        message: str = "The uploaded file is not a readable image",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ImageEncodeError(ImageProcessingError):
    """Re-encoding the resized image failed."""

    def __init__(
        self,
        message: str = "The image could not be compressed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ResourceAcquisitionError(TravelDiaryError):
    """
    Raised when the capture session cannot obtain its input.

    When:    Camera permission denied, camera already held by another
             session, no camera present, frame grab failed.
    Recovery: Surfaced to the user; the session stays in its previous state.
    """

    def __init__(
        self,
        message: str = "Unable to access the camera",
        resource: str = "camera",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        super().__init__(message=message, context=ctx)
        self.resource = resource


class PersistenceError(TravelDiaryError):
    """
    Raised when a repository mutation or query fails.

    HTTP: 500 Internal Server Error. The client always gets a generic message;
    the context (driver error, entry id) is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthServiceUnavailableError(TravelDiaryError):
    """
    Raised when the identity provider cannot be reached to verify a token.

    HTTP: 503 Service Unavailable
    """

    def __init__(
        self,
        message: str = "Authentication service is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
