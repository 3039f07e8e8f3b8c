"""Custom exceptions for the Itsunani core.

This module provides structured error handling with specific exception types
for each failure class of the sign-in and extract/save workflow. All
exceptions inherit from ItsunaniError.
"""
from typing import Any, Optional

REAUTHENTICATE_MESSAGE = (
    "Please sign out and sign in again to connect Google Calendar"
)


class ItsunaniError(Exception):
    """Base exception for all Itsunani errors.

    Attributes:
        message: Human-readable error description.
        extraction_id: Optional extraction ID related to the error.
    """

    def __init__(self, message: str, extraction_id: Optional[str] = None) -> None:
        self.message = message
        self.extraction_id = extraction_id
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message, optionally including the extraction ID."""
        if self.extraction_id:
            return f"{self.message} (extraction: {self.extraction_id})"
        return self.message

    def user_message(self) -> str:
        """Message shown to the user."""
        return self.message


class ConfigurationError(ItsunaniError):
    """Raised when required settings are missing."""
    pass


class ValidationError(ItsunaniError):
    """Raised for bad local input. Never sent over the network."""
    pass


class MalformedRedirectError(ItsunaniError):
    """Raised when a redirect URI has no fragment or lacks the session tokens."""

    def __init__(self, message: str = "No valid tokens found") -> None:
        super().__init__(message)


class ProviderAuthError(ItsunaniError):
    """Raised when the identity provider rejects the redirect token exchange."""
    pass


class VaultError(ItsunaniError):
    """Raised when the credential vault cannot be read or written."""
    pass


class ExtractionFailedError(ItsunaniError):
    """Raised when the remote extraction call does not succeed."""
    pass


class SaveFailedError(ItsunaniError):
    """Raised for any calendar-save failure other than a rejected credential.

    Attributes:
        status_code: HTTP status of the failed response, None on transport errors.
    """

    def __init__(
        self,
        message: str,
        extraction_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, extraction_id)


class ReauthenticationRequired(ItsunaniError):
    """Base for failures whose only recovery is a full sign-out/sign-in.

    Subclasses share the user-facing message but keep distinct reason codes so
    logs can tell a local storage defect from a remote revocation.
    """

    reason = "reauthentication_required"

    def user_message(self) -> str:
        return REAUTHENTICATE_MESSAGE


class ProviderCredentialMissingError(ReauthenticationRequired):
    """Raised when the vault holds no provider access token."""

    reason = "provider_credential_missing"

    def __init__(
        self,
        message: str = "Google Calendar is not connected",
        extraction_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, extraction_id)


class SessionExpiredError(ReauthenticationRequired):
    """Raised when the calendar service rejects the stored provider token (HTTP 401)."""

    reason = "provider_credential_rejected"

    def __init__(
        self,
        message: str = "Session expired",
        extraction_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, extraction_id)


def _error_text(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        error = payload.get("error") or payload.get("message")
        if error:
            return str(error)
    return default


def handle_http_error(
    status: int,
    payload: Any,
    phase: str,
    extraction_id: Optional[str] = None,
) -> ItsunaniError:
    """Convert a non-success API response to a specific exception.

    Args:
        status: HTTP status code of the response.
        payload: Decoded JSON body, or None if the body was not JSON.
        phase: Either "extract" or "save".
        extraction_id: Optional extraction ID for context.

    Returns:
        An appropriate ItsunaniError subclass.
    """
    if phase == "extract":
        return ExtractionFailedError(
            _error_text(payload, f"Extraction failed (HTTP {status})")
        )

    if status == 401:
        return SessionExpiredError(
            _error_text(payload, "Session expired"), extraction_id
        )
    return SaveFailedError(
        _error_text(payload, f"Save failed (HTTP {status})"),
        extraction_id,
        status_code=status,
    )


# Standard error message format helper
def format_error(action: str, error: Exception) -> str:
    """Format an error message consistently.

    Args:
        action: The action that failed (e.g., "Extract event", "Sign in").
        error: The exception that occurred.

    Returns:
        Formatted error string.
    """
    if isinstance(error, ItsunaniError):
        return f"{action} failed: {error.user_message()}"
    return f"{action} failed: {str(error)}"
