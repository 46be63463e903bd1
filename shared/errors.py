"""
Shared error handling for the Restaurant Directory.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class DirectoryException(Exception):
    """Base exception for Restaurant Directory services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidArgumentError(DirectoryException):
    """Missing or malformed input."""

    status_code = 400

    def __init__(self, message: str = "Invalid argument", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_ARGUMENT", message, details)


class AlreadyExistsError(DirectoryException):
    """Record already exists."""

    status_code = 409

    def __init__(self, message: str = "Already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__("ALREADY_EXISTS", message, details)


class NotFoundError(DirectoryException):
    """Record not found."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class DependencyFailureError(DirectoryException):
    """A collaborator call failed or timed out."""

    status_code = 500

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("DEPENDENCY_FAILURE", f"{service}: {message}", details)
