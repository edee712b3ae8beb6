from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Enum, Index, JSON
from sqlalchemy.orm import relationship
import uuid

from .db import Base
from .clock import utcnow


class Identity(Base):
    __tablename__ = "identities"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    # Self-describing credential hash, e.g. $scrypt$ln=16,r=8,p=1$<salt>$<digest>
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    sessions = relationship("SessionRecord", back_populates="identity")

    def __repr__(self):
        return f"<Identity(id={self.id}, username={self.username}, is_active={self.is_active})>"


class SessionRecord(Base):
    """
    Server-side record of an issued access token.

    Lets a token be revoked before its natural expiry. Rows are swept once
    they are past expires_at plus the retention grace period.
    """
    __tablename__ = "auth_sessions"

    token_id = Column(String, primary_key=True)
    identity_id = Column(Integer, ForeignKey("identities.id"), nullable=False)
    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    identity = relationship("Identity", back_populates="sessions")

    __table_args__ = (
        Index('ix_auth_sessions_identity_id', 'identity_id'),
        Index('ix_auth_sessions_expires_at', 'expires_at'),
    )

    def __repr__(self):
        return f"<SessionRecord(token_id={self.token_id}, identity_id={self.identity_id}, revoked={self.revoked})>"


AUTH_EVENT_TYPES = (
    "registration",
    "login_success",
    "login_failure",
    "logout",
    "password_change",
    "token_rejected",
    "deactivation",
)


class AuthEvent(Base):
    __tablename__ = "auth_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Null for failed logins against unknown usernames
    identity_id = Column(Integer, ForeignKey("identities.id"), nullable=True)
    username = Column(String, nullable=True)
    event_type = Column(Enum(*AUTH_EVENT_TYPES, name="auth_event_type"), nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    event_metadata = Column(JSON, nullable=True)

    __table_args__ = (
        Index('ix_auth_events_identity_id', 'identity_id'),
        Index('ix_auth_events_timestamp', 'timestamp'),
        Index('ix_auth_events_event_type', 'event_type'),
    )

    def to_dict(self) -> dict:
        """
        Serialize AuthEvent to a dictionary.

        Returns:
            Dictionary with all event fields, datetimes in ISO 8601 format
        """
        return {
            "id": str(self.id),
            "identity_id": self.identity_id,
            "username": self.username,
            "event_type": self.event_type,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.event_metadata or {}
        }
