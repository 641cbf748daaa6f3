import asyncio
from typing import Awaitable, Callable, Tuple, TypeVar
import structlog

from spotsave.core.config import settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Failures mentioning any of these are configuration problems, not hiccups
NON_RETRIABLE_MARKERS: Tuple[str, ...] = ("AccessDenied", "InvalidRole", "PermissionDenied")


def is_retriable(error: BaseException) -> bool:
    """Match the error's type name and message against the terminal markers"""
    signature = f"{type(error).__name__}: {error}"
    return not any(marker in signature for marker in NON_RETRIABLE_MARKERS)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = None,
    initial_delay: float = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn(), retrying transient failures with exponential backoff.

    The delay before retry n (0-indexed) is initial_delay * 2**n seconds.
    Terminal failures are re-raised on first occurrence; once max_retries
    retries are spent the last error is re-raised.
    """
    max_retries = settings.RETRY_MAX_ATTEMPTS if max_retries is None else max_retries
    initial_delay = settings.RETRY_INITIAL_DELAY_SECONDS if initial_delay is None else initial_delay

    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retriable(e):
                raise
            if attempt >= max_retries:
                logger.warning("Retries exhausted", attempts=attempt + 1, error=str(e))
                raise

            delay = initial_delay * (2 ** attempt)
            logger.info("Retrying after failure", attempt=attempt + 1, delay_seconds=delay, error=str(e))
            await sleep(delay)
            attempt += 1
