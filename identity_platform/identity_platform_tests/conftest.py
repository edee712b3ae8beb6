"""
Shared fixtures. Test settings go into the environment before any service
module is imported, since settings, engine and retry policy are built at
import time.
"""
import json
import os
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_identity_platform.db")
os.environ.setdefault("HASH_SCHEME_ROUNDS", "4")
os.environ.setdefault("STORE_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("SESSION_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("JWT_SIGNING_KEYS", json.dumps({"test-key": "test-signing-secret-0123456789abcdef"}))
os.environ.setdefault("JWT_ACTIVE_KEY_ID", "test-key")

import pytest

from identity_platform.identity_platform.auth_service.db import Base, engine, SessionLocal
from identity_platform.identity_platform.auth_service import models  # noqa: F401
from identity_platform.identity_platform.auth_service.hashing import CredentialHasher
from identity_platform.identity_platform.auth_service.tokens import TokenIssuer

TEST_KEYS = {"k1": "first-signing-secret-0123456789abcdef"}
TOKEN_LIFETIME = timedelta(minutes=15)


class FrozenClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start=datetime(2030, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_database():
    # Drop all tables and recreate them before each test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture(scope="session")
def hasher():
    return CredentialHasher(rounds=4, max_concurrency=2)


@pytest.fixture
def issuer(clock):
    return TokenIssuer(TEST_KEYS, "k1", lifetime=TOKEN_LIFETIME, clock=clock)
