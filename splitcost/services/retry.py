import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from splitcost.core.config import settings
from splitcost.core.errors import ConflictingWrite

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_conflicts(
    operation: Callable[[], Awaitable[T]],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None
) -> T:
    """
    Run ``operation`` again when the store reports a conflicting write.

    Only ConflictingWrite is retried: the batch was aborted and nothing was
    applied. StoreUnavailable propagates at once because a timed-out batch
    may still have committed.
    """
    attempts = attempts or settings.LEDGER_RETRY_ATTEMPTS
    base_delay = base_delay if base_delay is not None else settings.LEDGER_RETRY_BASE_DELAY

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except ConflictingWrite:
            if attempt == attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.info(
                "Ledger write conflicted, retrying",
                extra={"attempt": attempt, "delay": delay},
            )
            await asyncio.sleep(delay)
    raise ConflictingWrite("Retry attempts exhausted")
