"""
Orderboard — Compare-and-set retry decorator

A conditional write on an order or menu document fails with StaleWriteError
when another terminal rewrote the same document between our read and our
write (Redis WATCH fired). The decorated coroutine is re-run from the read,
so a status transition is re-judged against the document as it now stands.

Backoff per attempt: min(base * 2^attempt, cap) + jitter.
"""
import asyncio
import functools
import logging
import random

from orderboard.core.config import get_settings
from orderboard.core.errors import StaleWriteError

settings = get_settings()
logger = logging.getLogger(__name__)


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before re-running attempt `attempt + 1`."""
    base = settings.OPT_LOCK_BASE_DELAY_MS / 1000.0
    cap = settings.OPT_LOCK_MAX_DELAY_MS / 1000.0
    return min(base * (2 ** attempt), cap) + random.uniform(0, settings.OPT_LOCK_JITTER_MS / 1000.0)


def with_optimistic_retry(max_retries: int | None = None):
    """
    Re-run an async read-decide-write function while its document keeps moving.
    Gives up after `max_retries` attempts (OPT_LOCK_MAX_RETRIES by default) and
    re-raises the last StaleWriteError.

    Usage:
        @with_optimistic_retry()
        async def apply_transition(feed, order_id, target):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempts = max_retries or settings.OPT_LOCK_MAX_RETRIES
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except StaleWriteError as exc:
                    if attempt == attempts:
                        logger.error(
                            "%s/%s still contended after %d attempts in %s",
                            exc.collection, exc.key, attempts, func.__name__,
                        )
                        raise
                    delay = backoff_delay(attempt)
                    logger.warning(
                        "%s/%s rewritten concurrently (attempt %d/%d), re-reading in %.3fs",
                        exc.collection, exc.key, attempt, attempts, delay,
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
