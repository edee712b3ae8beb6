"""
Session store: server-side records of issued tokens.

A token is only accepted while its session exists, is not revoked and has
not expired. Revocation works by token id or for every session of an
identity at once.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Protocol
import logging
import threading

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .clock import Clock, utcnow
from .models import SessionRecord
from .resilience import store_operation

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def record(self, token_id: str, identity_id: int, issued_at: datetime, expires_at: datetime) -> None: ...

    def is_valid(self, token_id: str) -> bool: ...

    def revoke(self, token_id: str) -> None: ...

    def revoke_all(self, identity_id: int) -> int: ...

    def purge_expired(self, cutoff: datetime) -> int: ...


class SqlSessionStore:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self._clock = clock

    @store_operation
    def record(self, token_id: str, identity_id: int, issued_at: datetime, expires_at: datetime) -> None:
        if self._update_existing(token_id, identity_id, issued_at, expires_at):
            return
        self.db.add(SessionRecord(
            token_id=token_id,
            identity_id=identity_id,
            issued_at=issued_at,
            expires_at=expires_at,
            revoked=False,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent record() of the same token id got there first
            self.db.rollback()
            self._update_existing(token_id, identity_id, issued_at, expires_at)

    def _update_existing(self, token_id, identity_id, issued_at, expires_at) -> bool:
        # The revoked flag is left alone so a re-record never resurrects a session
        updated = self.db.query(SessionRecord).filter(SessionRecord.token_id == token_id).update(
            {
                SessionRecord.identity_id: identity_id,
                SessionRecord.issued_at: issued_at,
                SessionRecord.expires_at: expires_at,
            },
            synchronize_session=False,
        )
        self.db.commit()
        return updated > 0

    @store_operation
    def is_valid(self, token_id: str) -> bool:
        match = (
            self.db.query(SessionRecord.token_id)
            .filter(
                SessionRecord.token_id == token_id,
                SessionRecord.revoked.is_(False),
                SessionRecord.expires_at > self._clock(),
            )
            .first()
        )
        return match is not None

    @store_operation
    def revoke(self, token_id: str) -> None:
        self.db.query(SessionRecord).filter(
            SessionRecord.token_id == token_id,
            SessionRecord.revoked.is_(False),
        ).update(
            {SessionRecord.revoked: True, SessionRecord.revoked_at: self._clock()},
            synchronize_session=False,
        )
        self.db.commit()

    @store_operation
    def revoke_all(self, identity_id: int) -> int:
        revoked = self.db.query(SessionRecord).filter(
            SessionRecord.identity_id == identity_id,
            SessionRecord.revoked.is_(False),
        ).update(
            {SessionRecord.revoked: True, SessionRecord.revoked_at: self._clock()},
            synchronize_session=False,
        )
        self.db.commit()
        return revoked

    @store_operation
    def purge_expired(self, cutoff: datetime) -> int:
        purged = self.db.query(SessionRecord).filter(
            SessionRecord.expires_at < cutoff
        ).delete(synchronize_session=False)
        self.db.commit()
        return purged


@dataclass
class _MemorySession:
    identity_id: int
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False
    revoked_at: Optional[datetime] = None


class InMemorySessionStore:
    """
    Process-local session store.

    Every operation runs under one lock, so revocations are visible to all
    later is_valid() calls. Sessions do not survive a restart.
    """

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, _MemorySession] = {}

    def record(self, token_id: str, identity_id: int, issued_at: datetime, expires_at: datetime) -> None:
        with self._lock:
            existing = self._sessions.get(token_id)
            if existing is None:
                self._sessions[token_id] = _MemorySession(identity_id, issued_at, expires_at)
                return
            existing.identity_id = identity_id
            existing.issued_at = issued_at
            existing.expires_at = expires_at

    def is_valid(self, token_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(token_id)
            return (
                session is not None
                and not session.revoked
                and self._clock() < session.expires_at
            )

    def revoke(self, token_id: str) -> None:
        with self._lock:
            session = self._sessions.get(token_id)
            if session is not None and not session.revoked:
                session.revoked = True
                session.revoked_at = self._clock()

    def revoke_all(self, identity_id: int) -> int:
        revoked = 0
        with self._lock:
            now = self._clock()
            for session in self._sessions.values():
                if session.identity_id == identity_id and not session.revoked:
                    session.revoked = True
                    session.revoked_at = now
                    revoked += 1
        return revoked

    def purge_expired(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [token_id for token_id, s in self._sessions.items() if s.expires_at < cutoff]
            for token_id in stale:
                del self._sessions[token_id]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
