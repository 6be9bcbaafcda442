"""
Shared error handling for the OIDC login service.

Every failure of the login flow maps to one code below and is surfaced to the
caller as a 400 response. Messages are deliberately generic; ``details`` may
name a stage or a claim but never carries tokens, secrets or key material.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class LoginFlowException(Exception):
    """Base exception for the login flow."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, trace_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class MissingCodeError(LoginFlowException):
    """Callback invoked without an authorization code."""

    def __init__(self, message: str = "Authorization code not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("MissingCode", message, details)


class TokenExchangeFailedError(LoginFlowException):
    """Token endpoint unreachable or answered with a non-success response."""

    def __init__(self, message: str = "Failed to exchange authorization code", details: Optional[Dict[str, Any]] = None):
        super().__init__("TokenExchangeFailed", message, details)


class MissingIdTokenError(LoginFlowException):
    """Token endpoint succeeded but omitted the ID token."""

    def __init__(self, message: str = "Failed to obtain ID token", details: Optional[Dict[str, Any]] = None):
        super().__init__("MissingIdToken", message, details)


class MissingAccessTokenError(LoginFlowException):
    """Token endpoint succeeded but omitted the access token."""

    def __init__(self, message: str = "Access token not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("MissingAccessToken", message, details)


class VerificationError(LoginFlowException):
    """Base class for ID token verification failures."""


class InvalidSignatureError(VerificationError):
    """Signature does not verify against the resolved key."""

    def __init__(self, message: str = "ID token signature is invalid", details: Optional[Dict[str, Any]] = None):
        super().__init__("InvalidSignature", message, details)


class ClaimValidationFailedError(VerificationError):
    """Signature is valid but a claim violates policy."""

    def __init__(self, claim: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.claim = claim
        details = {"claim": claim, **(details or {})}
        super().__init__("ClaimValidationFailed", message or f"ID token claim '{claim}' is invalid", details)


class MalformedTokenError(VerificationError):
    """Token cannot be parsed as a compact JWS."""

    def __init__(self, message: str = "ID token is malformed", details: Optional[Dict[str, Any]] = None):
        super().__init__("MalformedToken", message, details)


class DisallowedAlgorithmError(VerificationError):
    """Token header names an algorithm outside the allow-list."""

    def __init__(self, message: str = "ID token signing algorithm is not allowed", details: Optional[Dict[str, Any]] = None):
        super().__init__("DisallowedAlgorithm", message, details)


class KeySetUnavailableError(VerificationError):
    """The provider's key set could not be fetched."""

    def __init__(self, message: str = "Signing key set is unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("KeySetUnavailable", message, details)


class UnknownKeyIdError(VerificationError):
    """The requested key id is absent even after a fresh fetch."""

    def __init__(self, message: str = "Signing key not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("UnknownKeyId", message, details)


class VerificationFailedError(LoginFlowException):
    """Callback-level wrapper for any verification failure."""

    def __init__(self, cause: VerificationError):
        self.cause = cause
        details = {"cause": cause.code, **cause.details}
        super().__init__("VerificationFailed", "ID Token verification failed", details)


class ProfileFetchFailedError(LoginFlowException):
    """User-info retrieval failed after successful verification."""

    def __init__(self, message: str = "Failed to fetch user profile", details: Optional[Dict[str, Any]] = None):
        super().__init__("ProfileFetchFailed", message, details)
