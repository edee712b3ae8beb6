"""
Explicit, idempotent seeding of the default identities.

Nothing here runs at application startup. Operators and test harnesses call
it deliberately:

    SEED_PASSWORD=... python -m identity_platform.identity_platform.auth_service.seed
"""
import logging
import sys
from typing import Iterable, Tuple

from .repositories import IdentityRepository
from .service import AuthService

logger = logging.getLogger(__name__)

DEFAULT_SEED_USERS: Tuple[Tuple[str, str], ...] = (
    ("raphael", "raphael@example.com"),
    ("admin", "admin@example.com"),
)


def seed_identities(
    service: AuthService,
    identities: IdentityRepository,
    password: str,
    users: Iterable[Tuple[str, str]] = DEFAULT_SEED_USERS,
) -> int:
    """
    Register the given users if no identity exists yet.

    Returns:
        Number of identities created (0 when already seeded)
    """
    if identities.count() > 0:
        logger.info("Identities already seeded, skipping")
        return 0

    created = 0
    for username, email in users:
        service.register(username, email, password)
        created += 1
    logger.info("Seeded %s identities", created)
    return created


def main() -> int:
    from .config import settings
    from .db import SessionLocal, init_db
    from .deps import build_auth_service

    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s:%(name)s:%(message)s")
    if not settings.SEED_PASSWORD:
        logger.error("SEED_PASSWORD must be set to seed identities")
        return 1

    init_db()
    with SessionLocal() as db:
        service = build_auth_service(db)
        seed_identities(service, service.identities, settings.SEED_PASSWORD)
    return 0


if __name__ == "__main__":
    sys.exit(main())
