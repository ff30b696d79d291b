"""Bounded retry for outbound transport calls.

Provides:
  - retry(): run a zero-argument async operation, retrying transient
    failures with exponential backoff.
  - PERMANENT_ERRORS: error classes re-raised immediately.

Telegram API errors that describe a rejected request (BadRequest,
Forbidden, ...) are permanent; network errors, timeouts and flood control
(RetryAfter) are transient. RetryAfter's server-provided delay is honoured.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TypeVar

from telegram.error import (
    BadRequest,
    ChatMigrated,
    Forbidden,
    InvalidToken,
    RetryAfter,
)

from .errors import (
    ButtonAlreadyRegisteredError,
    DuplicateRegistrationError,
    MissingPermissionsError,
    PermanentTransportError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

PERMANENT_ERRORS: tuple[type[BaseException], ...] = (
    BadRequest,
    ChatMigrated,
    Forbidden,
    InvalidToken,
    PermanentTransportError,
    MissingPermissionsError,
    DuplicateRegistrationError,
    ButtonAlreadyRegisteredError,
)


def _retry_after_seconds(exc: RetryAfter) -> float:
    value = exc.retry_after
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    base_delay: float = 0.5,
    max_delay: float = 30.0,
) -> T:
    """Await ``operation()``, retrying up to ``max_attempts`` times in total.

    Permanent errors propagate immediately. Any other exception is retried
    after a backoff of ``base_delay * 2**attempt`` seconds (or the
    RetryAfter delay), capped at ``max_delay``. The final attempt's error is
    re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        try:
            return await operation()
        except PERMANENT_ERRORS:
            raise
        except Exception as e:
            if attempt == max_attempts - 1:
                logger.warning("Giving up after %d attempts: %s", max_attempts, e)
                raise
            if isinstance(e, RetryAfter):
                delay = _retry_after_seconds(e)
            else:
                delay = base_delay * (2**attempt)
            delay = min(delay, max_delay)
            attempt += 1
            logger.debug(
                "Attempt %d/%d failed (%s), retrying in %.2fs",
                attempt,
                max_attempts,
                e,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
