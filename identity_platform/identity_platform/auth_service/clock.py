from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
