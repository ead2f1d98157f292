"""
Custom exceptions for the networth service.

Provides a hierarchy of exceptions with error codes for consistent error handling.
"""
from typing import Any, Dict, List, Optional


class NetworthError(Exception):
    """
    Base exception for all networth errors.

    Attributes:
        error_code: Unique error code (e.g., NW-100)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "NW-000"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Validation Errors (NW-1XX)
class ValidationError(NetworthError):
    """Input validation failed."""
    error_code = "NW-100"
    http_status = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        details["errors"] = errors or []
        super().__init__(message, details=details, **kwargs)


class TooManyFilesError(ValidationError):
    """More files uploaded than a single request may carry."""
    error_code = "NW-101"

    def __init__(self, count: int, max_files: int, **kwargs):
        message = f"Maximum {max_files} files allowed per upload"
        super().__init__(
            message,
            details={"file_count": count, "max_files": max_files},
            **kwargs,
        )


class NoAssetsSelectedError(ValidationError):
    """Finalize called without any selected assets."""
    error_code = "NW-102"

    def __init__(self, **kwargs):
        super().__init__("No assets selected", **kwargs)


# Not Found Errors (NW-2XX)
class NotFoundError(NetworthError):
    """Resource does not exist or is not owned by the caller."""
    error_code = "NW-200"
    http_status = 404

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, **kwargs)


class ReviewSessionNotFoundError(NotFoundError):
    """Review session not found for this user."""
    error_code = "NW-201"

    def __init__(self, session_id: str, **kwargs):
        message = f"Review session {session_id} not found"
        super().__init__(message, details={"session_id": session_id}, **kwargs)


class SnapshotNotFoundError(NotFoundError):
    """Snapshot not found for this user."""
    error_code = "NW-202"

    def __init__(self, snapshot_id: str, **kwargs):
        message = f"Snapshot {snapshot_id} not found"
        super().__init__(message, details={"snapshot_id": str(snapshot_id)}, **kwargs)


# Expiry Errors (NW-3XX)
class ExpiredError(NetworthError):
    """Resource existed but is past its expiry time."""
    error_code = "NW-300"
    http_status = 410

    def __init__(self, message: str = "Resource has expired", **kwargs):
        super().__init__(message, **kwargs)


class ReviewSessionExpiredError(ExpiredError):
    """Review session is past its expiry time."""
    error_code = "NW-301"

    def __init__(self, session_id: str, expires_at: Any = None, **kwargs):
        message = "Upload session has expired. Please upload again."
        details = {"session_id": session_id}
        if expires_at is not None:
            details["expires_at"] = str(expires_at)
        super().__init__(message, details=details, **kwargs)


# Conflict Errors (NW-4XX)
class ConflictError(NetworthError):
    """Operation conflicts with the current resource state."""
    error_code = "NW-400"
    http_status = 409

    def __init__(self, message: str = "Operation conflicts with current state", **kwargs):
        super().__init__(message, **kwargs)


class AlreadyFinalizedError(ConflictError):
    """Review session has already been committed to a snapshot."""
    error_code = "NW-401"

    def __init__(self, session_id: str, **kwargs):
        message = "Session has already been finalized"
        super().__init__(message, details={"session_id": session_id}, **kwargs)


class InvalidStatusTransitionError(ConflictError):
    """Session status change not permitted from its current status."""
    error_code = "NW-402"

    def __init__(self, current: str, target: str, **kwargs):
        message = f"Cannot move session from {current} to {target}"
        super().__init__(message, details={"current": current, "target": target}, **kwargs)


# Fatal Errors (NW-5XX)
class FatalError(NetworthError):
    """A whole batch failed or a required collaborator is unavailable."""
    error_code = "NW-500"
    http_status = 500

    def __init__(self, message: str = "Operation failed", **kwargs):
        super().__init__(message, **kwargs)


class ExtractionFailedError(FatalError):
    """No uploaded document could be parsed."""
    error_code = "NW-501"
    http_status = 422

    def __init__(self, errors: List[Dict[str, Any]], **kwargs):
        message = "Failed to parse all files"
        super().__init__(message, details={"errors": errors}, **kwargs)


class ClassificationFailedError(FatalError):
    """No asset could be classified."""
    error_code = "NW-502"
    http_status = 502

    def __init__(self, failed_count: int, **kwargs):
        message = "Failed to classify any assets"
        super().__init__(message, details={"failed_count": failed_count}, **kwargs)


class TaxonomyUnavailableError(FatalError):
    """Asset taxonomy could not be loaded."""
    error_code = "NW-503"

    def __init__(self, message: str = "Asset taxonomy is not configured", **kwargs):
        super().__init__(message, **kwargs)


class DatabaseError(FatalError):
    """Database operation failed."""
    error_code = "NW-504"

    def __init__(self, message: str = "Database operation failed", **kwargs):
        super().__init__(message, **kwargs)


# Authentication Errors (NW-6XX)
class AuthenticationError(NetworthError):
    """Caller identity was not supplied."""
    error_code = "NW-600"
    http_status = 401

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, **kwargs)


# External Service Errors (NW-9XX)
class ExternalServiceError(NetworthError):
    """External service call failed."""
    error_code = "NW-900"
    http_status = 502

    def __init__(self, service_name: str, message: Optional[str] = None, **kwargs):
        msg = message or f"External service '{service_name}' is unavailable"
        super().__init__(msg, details={"service": service_name}, **kwargs)
