"""
Identity persistence.

The repository exposes only the lookups and updates the authentication
service needs, not general query access.
"""
from typing import Optional, Protocol
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .clock import utcnow
from .exceptions import Conflict
from .models import Identity
from .resilience import store_operation

logger = logging.getLogger(__name__)


class IdentityRepository(Protocol):
    def find_by_username(self, username: str) -> Optional[Identity]: ...

    def find_by_email(self, email: str) -> Optional[Identity]: ...

    def get(self, identity_id: int) -> Optional[Identity]: ...

    def current_password_hash(self, identity_id: int) -> Optional[str]: ...

    def add(self, username: str, email: str, password_hash: str) -> Identity: ...

    def update_password_hash(self, identity_id: int, password_hash: str) -> None: ...

    def deactivate(self, identity_id: int) -> None: ...

    def count(self) -> int: ...


class SqlIdentityRepository:
    def __init__(self, db: Session):
        self.db = db

    @store_operation
    def find_by_username(self, username: str) -> Optional[Identity]:
        return self.db.query(Identity).filter(Identity.username == username).first()

    @store_operation
    def find_by_email(self, email: str) -> Optional[Identity]:
        return self.db.query(Identity).filter(Identity.email == email).first()

    @store_operation
    def get(self, identity_id: int) -> Optional[Identity]:
        return self.db.get(Identity, identity_id)

    @store_operation
    def current_password_hash(self, identity_id: int) -> Optional[str]:
        # Column query, so it reads the committed row rather than the identity map
        return self.db.query(Identity.password_hash).filter(Identity.id == identity_id).scalar()

    @store_operation
    def add(self, username: str, email: str, password_hash: str) -> Identity:
        identity = Identity(username=username, email=email, password_hash=password_hash)
        self.db.add(identity)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration
            self.db.rollback()
            email_taken = self.db.query(Identity.id).filter(Identity.email == email).first()
            field = "Email" if email_taken else "Username"
            raise Conflict(field) from exc
        self.db.refresh(identity)
        return identity

    @store_operation
    def update_password_hash(self, identity_id: int, password_hash: str) -> None:
        self.db.query(Identity).filter(Identity.id == identity_id).update(
            {Identity.password_hash: password_hash, Identity.updated_at: utcnow()},
            synchronize_session="fetch",
        )
        self.db.commit()

    @store_operation
    def deactivate(self, identity_id: int) -> None:
        self.db.query(Identity).filter(Identity.id == identity_id).update(
            {Identity.is_active: False, Identity.updated_at: utcnow()},
            synchronize_session="fetch",
        )
        self.db.commit()

    @store_operation
    def count(self) -> int:
        return self.db.query(Identity).count()
