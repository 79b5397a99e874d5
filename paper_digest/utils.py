"""Utility functions for the paper alert digest."""

import asyncio
import hashlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from .errors import AuthenticationError, OracleError, RateLimitError, OracleNetworkError, classify_oracle_error

logger = structlog.get_logger(__name__)


def generate_content_hash(content: str) -> str:
    """Generate SHA-256 hash of content.

    Args:
        content: Content to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def parse_date_string(date_str: str) -> datetime | None:
    """Parse various date string formats.

    Args:
        date_str: Date string to parse

    Returns:
        Parsed datetime or None if parsing fails
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    # Mail headers use RFC 2822, e.g. "Thu, 17 Jul 2025 23:17:14 GMT"
    try:
        from email.utils import parsedate_to_datetime
        return parsedate_to_datetime(date_str)
    except (ValueError, TypeError):
        pass

    try:
        parsed = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    except ValueError:
        pass

    formats = [
        "%Y-%m-%d %H:%M:%S",
        "%d/%m/%Y",
        "%m/%d/%Y",
        "%B %d, %Y",
        "%b %d, %Y",
        "%d %B %Y",
        "%d %b %Y",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue

    logger.warning("Failed to parse date string", date_string=date_str)
    return None


def backoff_delay(error: OracleError, attempt: int) -> float:
    """Seconds to wait before retrying after ``error`` on ``attempt`` (1-based)."""
    if isinstance(error, RateLimitError):
        return min(1.0 * 2 ** attempt, 30.0)
    if isinstance(error, OracleNetworkError):
        return min(2.0 * 2 ** attempt, 60.0)
    return 1.0 * attempt


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """Retry an async oracle call with error-classified backoff.

    Exceptions are classified with ``classify_oracle_error``; authentication
    failures are raised immediately, everything else is retried up to
    ``max_attempts`` total attempts.

    Args:
        func: Async function to retry
        max_attempts: Total number of attempts
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        Function result

    Raises:
        The classified error of the last attempt
    """
    last_error: OracleError | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except Exception as e:
            error = classify_oracle_error(e)
            last_error = error
            if isinstance(error, AuthenticationError) or not error.retryable:
                logger.error("Non-retryable oracle error", kind=error.kind, error=str(error))
                if error is e:
                    raise
                raise error from e
            if attempt < max_attempts:
                delay = backoff_delay(error, attempt)
                logger.warning(
                    "Retry attempt failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    kind=error.kind,
                    delay=delay,
                    error=str(error)
                )
                await sleep(delay)
            else:
                logger.error(
                    "All retry attempts failed",
                    max_attempts=max_attempts,
                    kind=error.kind,
                    error=str(error)
                )

    assert last_error is not None
    raise last_error
