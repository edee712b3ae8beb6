"""
Access token issuance and verification.

Tokens are JWTs signed with one key out of a key ring. The header's ``kid``
names the key, so several keys can be trusted at once while a new key takes
over signing. A key is retired by dropping it from the ring once every
token signed with it has expired.

Single-token model: there is no refresh token. Revocation before expiry is
tracked server-side by the session store, never inside the token.
"""
from calendar import timegm
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Mapping
import logging
import uuid

import jwt

from .clock import Clock, utcnow
from .exceptions import ExpiredToken, InvalidSignature, MalformedToken

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ["sub", "jti", "iat", "exp"]


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    identity_id: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    identity_id: int
    token_id: str
    issued_at: datetime
    expires_at: datetime


def _timestamp(moment: datetime) -> int:
    return timegm(moment.utctimetuple())


def _from_timestamp(value: int) -> datetime:
    return datetime(1970, 1, 1) + timedelta(seconds=value)


class TokenIssuer:
    def __init__(
        self,
        signing_keys: Mapping[str, str],
        active_key_id: str,
        lifetime: timedelta = timedelta(minutes=15),
        algorithm: str = "HS256",
        clock: Clock = utcnow,
    ):
        if active_key_id not in signing_keys:
            raise ValueError(f"active signing key '{active_key_id}' is not in the key ring")
        if lifetime <= timedelta(0):
            raise ValueError("token lifetime must be positive")
        self._keys: Dict[str, str] = dict(signing_keys)
        self.active_key_id = active_key_id
        self.lifetime = lifetime
        self.algorithm = algorithm
        self._clock = clock

    def issue(self, identity_id: int) -> IssuedToken:
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self.lifetime
        token_id = uuid.uuid4().hex
        payload = {
            "sub": str(identity_id),
            "jti": token_id,
            "iat": _timestamp(issued_at),
            "exp": _timestamp(expires_at),
            "typ": TOKEN_TYPE,
        }
        token = jwt.encode(
            payload,
            self._keys[self.active_key_id],
            algorithm=self.algorithm,
            headers={"kid": self.active_key_id},
        )
        return IssuedToken(
            token=token,
            token_id=token_id,
            identity_id=identity_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def verify(self, token: str, allow_expired: bool = False) -> TokenClaims:
        """
        Check a token's signature and expiry.

        Args:
            token: Encoded token string
            allow_expired: Skip only the expiry check

        Raises:
            MalformedToken: Token cannot be parsed or lacks required claims
            InvalidSignature: Unknown or retired key, or signature mismatch
            ExpiredToken: The token's expiry has passed
        """
        if not token:
            raise MalformedToken("empty token")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise MalformedToken("unparseable token header") from exc

        key_id = header.get("kid")
        if key_id not in self._keys:
            raise InvalidSignature(f"untrusted signing key {key_id!r}")

        try:
            payload = jwt.decode(
                token,
                self._keys[key_id],
                algorithms=[self.algorithm],
                options={
                    "require": REQUIRED_CLAIMS,
                    # Expiry is checked below against the injected clock
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as exc:
            raise InvalidSignature(str(exc)) from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedToken(str(exc)) from exc

        if payload.get("typ") != TOKEN_TYPE:
            raise MalformedToken("unexpected token type")
        try:
            identity_id = int(payload["sub"])
            issued_at = _from_timestamp(int(payload["iat"]))
            expires_at = _from_timestamp(int(payload["exp"]))
        except (TypeError, ValueError, OverflowError) as exc:
            raise MalformedToken("invalid claim values") from exc

        if not allow_expired and _timestamp(self._clock()) >= _timestamp(expires_at):
            raise ExpiredToken(f"token {payload['jti']} expired at {expires_at.isoformat()}")

        return TokenClaims(
            identity_id=identity_id,
            token_id=str(payload["jti"]),
            issued_at=issued_at,
            expires_at=expires_at,
        )
