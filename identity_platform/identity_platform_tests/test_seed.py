import pytest

from identity_platform.identity_platform.auth_service.repositories import SqlIdentityRepository
from identity_platform.identity_platform.auth_service.seed import DEFAULT_SEED_USERS, seed_identities
from identity_platform.identity_platform.auth_service.service import AuthService
from identity_platform.identity_platform.auth_service.sessions import InMemorySessionStore


@pytest.fixture
def identities(db_session):
    return SqlIdentityRepository(db_session)


@pytest.fixture
def service(identities, hasher, issuer, clock):
    return AuthService(identities, InMemorySessionStore(clock=clock), hasher, issuer, clock=clock)


def test_seed_creates_default_identities(service, identities):
    assert seed_identities(service, identities, "seed-pw") == len(DEFAULT_SEED_USERS)
    assert identities.find_by_email("raphael@example.com").username == "raphael"
    assert identities.find_by_username("admin") is not None


def test_seed_is_idempotent(service, identities):
    seed_identities(service, identities, "seed-pw")
    assert seed_identities(service, identities, "seed-pw") == 0
    assert identities.count() == len(DEFAULT_SEED_USERS)


def test_seed_skips_non_empty_store(service, identities):
    service.register("someone", "someone@example.com", "pw")
    assert seed_identities(service, identities, "seed-pw") == 0
    assert identities.find_by_username("raphael") is None


def test_seeded_identity_can_log_in(service, identities):
    seed_identities(service, identities, "seed-pw")
    token = service.login("raphael", "seed-pw").token
    assert service.authenticate(token) == identities.find_by_username("raphael").id
