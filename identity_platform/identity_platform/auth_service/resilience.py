"""
Store call resilience: timeout translation and a single retry.

A store operation that times out or loses its connection raises
``Unavailable``. It is retried once after a short backoff and then
surfaces to the caller; it is never treated as success.
"""
import functools
import logging

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import settings
from .exceptions import Unavailable

logger = logging.getLogger(__name__)

STORE_ATTEMPTS = 2


def store_operation(func):
    """
    Decorate a repository or session store method.

    The decorated method's instance must expose the SQLAlchemy session as
    ``self.db`` so the failed transaction can be rolled back.
    """

    @functools.wraps(func)
    def translated(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except (OperationalError, PoolTimeoutError) as exc:
            self.db.rollback()
            logger.warning("Store call %s failed: %s", func.__qualname__, exc.__class__.__name__)
            raise Unavailable(f"{func.__qualname__} failed") from exc

    return retry(
        retry=retry_if_exception_type(Unavailable),
        stop=stop_after_attempt(STORE_ATTEMPTS),
        wait=wait_fixed(settings.STORE_RETRY_BACKOFF_SECONDS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(translated)
