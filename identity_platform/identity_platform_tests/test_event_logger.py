"""
Unit tests for event logger utility.
"""
import pytest
from unittest.mock import Mock, MagicMock
from sqlalchemy.exc import SQLAlchemyError

from identity_platform.identity_platform.auth_service.utils.event_logger import client_address, log_auth_event
from identity_platform.identity_platform.auth_service.models import AuthEvent, Identity


@pytest.fixture
def test_identity(db_session):
    identity = Identity(username="testuser", email="test@example.com", password_hash="$scrypt$placeholder")
    db_session.add(identity)
    db_session.commit()
    db_session.refresh(identity)
    return identity


@pytest.fixture
def mock_request():
    """Create a mock FastAPI Request object."""
    request = Mock()
    request.client = Mock()
    request.client.host = "192.168.1.1"
    request.headers = {"user-agent": "Mozilla/5.0 Test Browser"}
    return request


def test_log_auth_event_creates_record(db_session, test_identity, mock_request):
    log_auth_event("login_success", db_session, identity_id=test_identity.id,
                   username=test_identity.username, request=mock_request)

    events = db_session.query(AuthEvent).filter(AuthEvent.identity_id == test_identity.id).all()
    assert len(events) == 1
    assert events[0].event_type == "login_success"
    assert events[0].username == "testuser"
    assert events[0].ip_address == "192.168.1.1"
    assert events[0].user_agent == "Mozilla/5.0 Test Browser"
    assert events[0].timestamp is not None


def test_log_auth_event_without_request_or_identity(db_session):
    log_auth_event("login_failure", db_session, username="nobody")

    event = db_session.query(AuthEvent).first()
    assert event.identity_id is None
    assert event.ip_address is None
    assert event.to_dict()["metadata"] == {}


def test_log_auth_event_stores_metadata(db_session, test_identity):
    log_auth_event("logout", db_session, identity_id=test_identity.id, metadata={"token_id": "abc"})

    event = db_session.query(AuthEvent).first()
    assert event.to_dict()["metadata"] == {"token_id": "abc"}


def test_log_auth_event_rejects_unknown_type(db_session):
    with pytest.raises(ValueError):
        log_auth_event("2fa_success", db_session)


def test_forwarded_for_fallback():
    request = Mock()
    request.client = None
    request.headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
    assert client_address(request) == "203.0.113.7"


def test_database_error_does_not_break_auth_flow():
    db = MagicMock()
    db.commit.side_effect = SQLAlchemyError("disk full")

    log_auth_event("login_success", db, identity_id=1, username="testuser")

    db.rollback.assert_called_once()
