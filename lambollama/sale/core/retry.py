"""
Retry of ledger transactions on transient database failures.

SQLite reports a busy database as an OperationalError ("database is locked").
Such failures are retried with exponential backoff. Sale errors are business
outcomes of an operation and always propagate on the first attempt.
"""

import asyncio
import logging
from functools import wraps
from typing import Sequence, Type

from sqlalchemy.exc import OperationalError

from lambollama.sale.errors import SaleError

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """Transient failure raised by ledger code that wants another attempt."""
    pass


TRANSIENT_ERRORS = (OperationalError, RetryableError)


def backoff_delays(attempts: int, initial_delay: float, max_delay: float, factor: float):
    """Sleep before each attempt after the first, capped at max_delay."""
    delay = initial_delay
    for _ in range(attempts - 1):
        yield delay
        delay = min(delay * factor, max_delay)


def with_retries(
    max_attempts: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    retryable_errors: Sequence[Type[Exception]] = TRANSIENT_ERRORS
):
    """
    Retry an async ledger operation on transient database errors.

    Every attempt must open its own transaction, so a failed attempt is fully
    rolled back before the next one runs.

    Args:
        max_attempts: Attempts before the last transient error is re-raised
        initial_delay: Seconds to wait before the second attempt
        max_delay: Upper bound of the wait between attempts
        backoff_factor: Growth of the wait after each failed attempt
        retryable_errors: Exception types treated as transient
    """
    transient = tuple(retryable_errors)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            delays = backoff_delays(max_attempts, initial_delay, max_delay, backoff_factor)
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except SaleError:
                    raise
                except transient as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise
                    logger.warning(f"{func.__name__} hit a transient error ({e}), attempt {attempt + 1} in {delay:.2f}s")
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator
