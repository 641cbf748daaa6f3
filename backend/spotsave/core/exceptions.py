"""
Error taxonomy for SpotSave.

Every error that can reach the HTTP boundary derives from SpotSaveError and
carries the status code it is rendered with.
"""

from typing import Any, Dict, Optional


class SpotSaveError(Exception):
    """Base exception for all SpotSave errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidRoleError(SpotSaveError):
    """Raised when a role ARN is malformed or the role does not exist."""
    status_code = 400


class PermissionDeniedError(SpotSaveError):
    """Raised when the trust policy or external ID rejects the caller."""
    status_code = 403


class TransientProviderError(SpotSaveError):
    """Raised for throttling and network failures that are worth retrying."""
    status_code = 503


class UnknownProviderError(SpotSaveError):
    """Raised for provider failures with no known classification."""
    status_code = 500


class ExpiredCredentialsError(SpotSaveError):
    """Raised when temporary credentials are expired or about to expire."""
    status_code = 401


class InvalidAccountIdError(SpotSaveError, ValueError):
    """Raised when an AWS account ID is not exactly 12 digits."""
    status_code = 400


class CostFetchError(SpotSaveError):
    """Raised when a Cost Explorer query fails."""
    status_code = 500


class ValidationError(SpotSaveError):
    """Raised when request input fails validation."""
    status_code = 400


class NotConnectedError(SpotSaveError):
    """Raised when a session operation needs a connected AWS account."""
    status_code = 409


class AuthenticationError(SpotSaveError):
    """Raised when a user cannot be authenticated."""
    status_code = 401
