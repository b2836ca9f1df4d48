"""
Errors raised by the ID4me login flow.
Each carries an OAuth-style error code and the HTTP status the callback/login routes answer with.
The message is for logs; user-facing pages show only error_description.
"""


class Id4meLoginError(Exception):
    error = "authentication_failed"
    error_description = "Authentication failed. Please try again."
    status_code = 502


class InvalidDomainError(Id4meLoginError):
    """Domain does not resolve to a valid ID4me authority."""
    error = "invalid_domain"
    error_description = "Invalid OpenID domain"
    status_code = 400


class OpenIdConfigError(InvalidDomainError):
    """Authority's openid-configuration could not be fetched or is unusable."""


class StateMismatchError(Id4meLoginError):
    """Callback state does not match the pending login (or nothing is pending)."""
    error = "invalid_state"
    error_description = "The received state does not match the expected value."
    status_code = 403

    def __init__(self, got: str | None, expected: str | None):
        super().__init__("state mismatch")
        self.got = got
        self.expected = expected


class AudienceMismatchError(Id4meLoginError):
    error = "invalid_audience"
    error_description = "The ID token audience does not match this client."
    status_code = 403


class NonceMismatchError(Id4meLoginError):
    error = "invalid_nonce"
    error_description = "The ID token nonce does not match the expected value."
    status_code = 403


class TokenExchangeError(Id4meLoginError):
    error = "token_exchange_failed"


class IdTokenError(Id4meLoginError):
    """ID token missing, malformed, or lacking required claims."""
    error = "invalid_id_token"


class RegistrationError(Id4meLoginError):
    error = "registration_failed"


class RegistrationConflictError(RegistrationError):
    """Concurrent first registration lost the insert race and the winner's row is not visible."""
    error = "registration_conflict"
