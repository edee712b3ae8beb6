"""
Explicit wiring of the authentication core for FastAPI routes.

Process-wide collaborators (hasher, token issuer, in-memory session store)
are built once from settings; per-request collaborators are built around
the request's database session.
"""
from datetime import timedelta
from functools import lru_cache
from typing import Optional
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .hashing import CredentialHasher
from .repositories import SqlIdentityRepository
from .service import AuthService
from .sessions import InMemorySessionStore, SessionStore, SqlSessionStore
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)


@lru_cache
def get_hasher() -> CredentialHasher:
    return CredentialHasher(
        rounds=settings.HASH_SCHEME_ROUNDS,
        max_concurrency=settings.HASH_MAX_CONCURRENCY,
    )


@lru_cache
def get_token_issuer() -> TokenIssuer:
    return TokenIssuer(
        signing_keys=settings.JWT_SIGNING_KEYS,
        active_key_id=settings.JWT_ACTIVE_KEY_ID,
        lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        algorithm=settings.JWT_ALGORITHM,
    )


@lru_cache
def get_memory_session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


def build_session_store(db: Session) -> SessionStore:
    if settings.SESSION_BACKEND == "memory":
        return get_memory_session_store()
    return SqlSessionStore(db)


def build_auth_service(db: Session) -> AuthService:
    return AuthService(
        identities=SqlIdentityRepository(db),
        sessions=build_session_store(db),
        hasher=get_hasher(),
        issuer=get_token_issuer(),
        session_retention=timedelta(minutes=settings.SESSION_RETENTION_MINUTES),
    )


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return build_auth_service(db)


def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_bearer_token(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise unauthorized()
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise unauthorized()
    return token
