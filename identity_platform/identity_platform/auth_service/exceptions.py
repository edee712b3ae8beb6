"""
Error taxonomy for the authentication core.

Token errors stay distinguishable inside the service so they can be logged
with detail; the HTTP layer only ever sees ``Unauthenticated``.
"""


class AuthError(Exception):
    """Base class for every authentication failure."""


class InvalidCredentials(AuthError):
    """Unknown username, inactive identity or wrong password."""


class TokenError(AuthError):
    """A presented token could not be accepted."""


class MalformedToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


class InvalidSignature(TokenError):
    pass


class Unauthenticated(AuthError):
    """Generic rejection surfaced to external callers."""


class Conflict(AuthError):
    """Duplicate username or email."""

    def __init__(self, field: str):
        super().__init__(f"{field} already exists")
        self.field = field


class Unavailable(AuthError):
    """The backing store timed out or could not be reached."""


class EmptyPassword(ValueError):
    """Empty plaintext passed to the credential hasher."""
