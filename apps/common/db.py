import logging
import time

from django.conf import settings
from django.db import OperationalError

from apps.common.exceptions import TransientIOError

logger = logging.getLogger(__name__)


def run_with_retry(func, *, attempts=None, backoff_base=None):
    """
    Run a transactional unit of work, retrying on storage-level failures.

    ``func`` must open its own ``transaction.atomic()`` block so every retry
    starts from a clean transaction. Deadlocks and lock timeouts surface as
    ``OperationalError``; after the last attempt they are raised as
    ``TransientIOError`` so the API answers 503 instead of 500.
    """
    attempts = attempts or settings.SETTLEMENT_RETRY_ATTEMPTS
    if backoff_base is None:
        backoff_base = settings.SETTLEMENT_RETRY_BACKOFF_SECONDS

    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            if attempt >= attempts - 1:
                logger.error("Giving up after %s attempts: %s", attempts, exc)
                raise TransientIOError() from exc
            delay = backoff_base * (2 ** attempt)
            logger.warning("Storage error on attempt %s/%s, retrying in %.2fs: %s", attempt + 1, attempts, delay, exc)
            time.sleep(delay)
