"""
Authentication service: login, token authentication, logout and password
changes on top of the hasher, token issuer, identity repository and session
store it is constructed with.
"""
from datetime import timedelta
import logging

from .clock import Clock, utcnow
from .exceptions import Conflict, InvalidCredentials, TokenError, Unauthenticated
from .hashing import CredentialHasher
from .models import Identity
from .repositories import IdentityRepository
from .sessions import SessionStore
from .tokens import IssuedToken, TokenClaims, TokenIssuer

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        identities: IdentityRepository,
        sessions: SessionStore,
        hasher: CredentialHasher,
        issuer: TokenIssuer,
        session_retention: timedelta = timedelta(days=1),
        clock: Clock = utcnow,
    ):
        self.identities = identities
        self.sessions = sessions
        self.hasher = hasher
        self.issuer = issuer
        self.session_retention = session_retention
        self._clock = clock

    def register(self, username: str, email: str, password: str) -> Identity:
        """
        Create a new identity.

        Raises:
            Conflict: Username or email is already taken
            EmptyPassword: Password is empty
        """
        if self.identities.find_by_email(email):
            raise Conflict("Email")
        if self.identities.find_by_username(username):
            raise Conflict("Username")

        credential = self.hasher.hash(password)
        identity = self.identities.add(username, email, credential.encoded)
        logger.info("Registered identity: identity_id=%s, username=%s", identity.id, identity.username)
        return identity

    def login(self, username: str, password: str) -> IssuedToken:
        """
        Check credentials and open a session.

        Unknown usernames, inactive identities and wrong passwords all raise
        the same InvalidCredentials.
        """
        identity = self.identities.find_by_username(username)
        if identity is None:
            self.hasher.dummy_verify()
            raise InvalidCredentials()

        identity_id = identity.id
        verified_hash = identity.password_hash
        matched, upgraded = self.hasher.verify_and_update(password, verified_hash)
        if not matched or not identity.is_active:
            raise InvalidCredentials()

        if upgraded is not None:
            self.identities.update_password_hash(identity_id, upgraded.encoded)
            verified_hash = upgraded.encoded
            logger.info("Upgraded credential hash: identity_id=%s, algorithm=%s", identity_id, upgraded.algorithm)

        issued = self.issuer.issue(identity_id)
        self.sessions.record(issued.token_id, identity_id, issued.issued_at, issued.expires_at)

        # A password change that landed between verify and record would miss
        # this session in its revoke_all; re-read the hash and back out.
        if self.identities.current_password_hash(identity_id) != verified_hash:
            self.sessions.revoke(issued.token_id)
            logger.info("Login raced a password change: identity_id=%s, token_id=%s", identity_id, issued.token_id)
            raise InvalidCredentials()

        logger.info("Session opened: identity_id=%s, token_id=%s", identity_id, issued.token_id)
        return issued

    def authenticate(self, token: str) -> int:
        """
        Resolve a bearer token to its identity id.

        Raises:
            Unauthenticated: For any invalid, expired or revoked token
        """
        try:
            claims = self.issuer.verify(token)
        except TokenError as exc:
            logger.info("Token rejected: %s: %s", exc.__class__.__name__, exc)
            raise Unauthenticated() from None

        if not self.sessions.is_valid(claims.token_id):
            logger.info("Token rejected: session %s revoked or expired", claims.token_id)
            raise Unauthenticated()
        return claims.identity_id

    def logout(self, token: str) -> TokenClaims:
        """
        Revoke the token's session. Safe to call repeatedly.

        Expired tokens are accepted since their session is already dead.

        Returns:
            Claims of the token whose session was closed
        """
        try:
            claims = self.issuer.verify(token, allow_expired=True)
        except TokenError as exc:
            logger.warning("Logout with rejected token: %s: %s", exc.__class__.__name__, exc)
            raise Unauthenticated() from None
        self.sessions.revoke(claims.token_id)
        logger.info("Session closed: identity_id=%s, token_id=%s", claims.identity_id, claims.token_id)
        return claims

    def change_password(self, identity_id: int, old_password: str, new_password: str) -> None:
        """
        Replace the password and revoke every outstanding session.

        Raises:
            InvalidCredentials: Old password does not match
            EmptyPassword: New password is empty
        """
        identity = self.identities.get(identity_id)
        if identity is None or not identity.is_active:
            self.hasher.dummy_verify()
            raise InvalidCredentials()
        if not self.hasher.verify(old_password, identity.password_hash):
            raise InvalidCredentials()

        credential = self.hasher.hash(new_password)
        self.identities.update_password_hash(identity_id, credential.encoded)
        revoked = self.sessions.revoke_all(identity_id)
        logger.info("Password changed: identity_id=%s, sessions_revoked=%s", identity_id, revoked)

    def deactivate(self, identity_id: int) -> None:
        """Soft-deactivate an identity. The row is kept for the audit trail."""
        self.identities.deactivate(identity_id)
        revoked = self.sessions.revoke_all(identity_id)
        logger.info("Identity deactivated: identity_id=%s, sessions_revoked=%s", identity_id, revoked)

    def purge_expired_sessions(self) -> int:
        cutoff = self._clock() - self.session_retention
        purged = self.sessions.purge_expired(cutoff)
        if purged:
            logger.info("Purged %s expired sessions older than %s", purged, cutoff.isoformat())
        return purged
