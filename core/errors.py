"""
Library Error Taxonomy

Provides:
- ValidationError: the request is malformed, fix it before retrying
- NotFoundError: a referenced document or collection does not exist
- StoreError: the underlying store failed, the whole operation may be retried
- ConfigurationError: invalid configuration at startup

Every error carries a machine-readable type, an HTTP status code and a
details dict, so the HTTP layer can render it without knowing the class.

Usage:
    from core.errors import ValidationError

    if not owner_id:
        raise ValidationError("owner_id is required", field='owner_id')
"""

from typing import Any, Dict


class LibraryError(Exception):
    """Base exception for library errors."""

    status_code = 500
    error_type = 'internal_error'
    message = 'An unexpected error occurred'
    retryable = False

    def __init__(self, message: str = None, **details: Any):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.error_type,
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details,
        }


class ValidationError(LibraryError):
    """Invalid request shape or value."""
    status_code = 400
    error_type = 'validation_error'
    message = 'Invalid request'


class NotFoundError(LibraryError):
    """Referenced resource does not exist for this owner."""
    status_code = 404
    error_type = 'not_found'
    message = 'Resource not found'


class StoreError(LibraryError):
    """Underlying read/write failure."""
    status_code = 503
    error_type = 'store_error'
    message = 'Storage operation failed'
    retryable = True


class ConfigurationError(LibraryError):
    """Configuration issue."""
    status_code = 500
    error_type = 'configuration_error'
    message = 'Configuration error'
