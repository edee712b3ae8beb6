"""
Event logger utility for authentication events.
"""
from typing import Optional
from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from ..clock import utcnow
from ..models import AUTH_EVENT_TYPES, AuthEvent

logger = logging.getLogger(__name__)


def client_address(request: Optional[Request]) -> Optional[str]:
    """Client IP, falling back to the first X-Forwarded-For hop."""
    if request is None:
        return None
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return None


def log_auth_event(
    event_type: str,
    db: Session,
    identity_id: Optional[int] = None,
    username: Optional[str] = None,
    request: Optional[Request] = None,
    metadata: Optional[dict] = None
) -> None:
    """
    Record an authentication event in the audit trail.

    Args:
        event_type: One of AUTH_EVENT_TYPES
        db: Database session
        identity_id: Identity the event concerns, if known
        username: Username as presented or stored
        request: FastAPI Request, for client IP and user agent
        metadata: Optional dictionary of additional context. Never put
                  passwords, hashes or tokens in here.

    Raises:
        ValueError: If event_type is invalid
    """
    if event_type not in AUTH_EVENT_TYPES:
        raise ValueError(
            f"Invalid event_type '{event_type}'. Must be one of: {', '.join(AUTH_EVENT_TYPES)}"
        )

    ip_address = client_address(request)
    user_agent = request.headers.get("user-agent") if request is not None else None

    try:
        auth_event = AuthEvent(
            identity_id=identity_id,
            username=username,
            event_type=event_type,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=utcnow(),
            event_metadata=metadata or {}
        )
        db.add(auth_event)
        db.commit()

        logger.info(
            "AUTH %s identity_id=%s username=%s ip=%s",
            event_type, identity_id, username, ip_address
        )

    except SQLAlchemyError as e:
        # Losing an audit row must not break the auth flow
        logger.warning(
            "Failed to log auth event: identity_id=%s, event_type=%s, error=%s",
            identity_id, event_type, e
        )
        db.rollback()
