"""Deadline-bounded retry loop for serializable YDB transactions."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import ydb

from .constants import TRANSFER_TIMEOUT
from .errors import TransferTimeout, is_overload, is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    How a transaction body is retried.

    Attributes:
        timeout: Upper bound in seconds on all attempts together
        max_retries: Retry limit, None means retry until the deadline
        fast_backoff: Backoff after contention errors (aborted tx, bad session)
        slow_backoff: Backoff after overload and unavailability errors
    """

    timeout: float = TRANSFER_TIMEOUT
    max_retries: Optional[int] = None
    fast_backoff: ydb.BackoffSettings = field(default_factory=lambda: ydb.BackoffSettings(ceiling=10, slot_duration=0.005))
    slow_backoff: ydb.BackoffSettings = field(default_factory=lambda: ydb.BackoffSettings(ceiling=6, slot_duration=0.05))

    def backoff(self, error: BaseException, retry_number: int) -> float:
        """Seconds to sleep before retry ``retry_number`` after ``error``."""
        settings = self.slow_backoff if is_overload(error) else self.fast_backoff
        return settings.calc_timeout(retry_number)


async def execute_in_transaction(
    pool: Any,
    callee: Callable[[Any], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    tx_mode: Optional[Any] = None,
) -> T:
    """
    Run ``callee`` inside a transaction, rerunning it on transient errors.

    Every attempt takes a session from the pool, opens a fresh transaction and
    awaits ``callee(tx)``. The callee is expected to commit (usually through
    ``commit_tx=True`` on its last statement); leaving the transaction context
    without a commit rolls it back.

    Args:
        pool: YDB query session pool
        callee: Transaction body, receives the transaction context
        policy: Retry policy (default: RetryPolicy())
        tx_mode: Transaction mode (default: serializable read-write)

    Returns:
        Whatever the callee returned on the committed attempt

    Raises:
        TransferTimeout: If the deadline elapsed before a commit
        ydb.Error: Any non-transient error, unchanged
        TimeoutError: Raised by the callee itself before the deadline, unchanged
    """
    if policy is None:
        policy = RetryPolicy()
    if tx_mode is None:
        tx_mode = ydb.QuerySerializableReadWrite()

    last_error: Optional[BaseException] = None
    deadline = asyncio.timeout(policy.timeout)
    try:
        async with deadline:
            retry_number = 0
            while True:
                try:
                    return await _attempt(pool, callee, tx_mode)
                except Exception as e:
                    if not is_transient(e):
                        raise
                    if policy.max_retries is not None and retry_number >= policy.max_retries:
                        logger.debug(f"Retry limit {policy.max_retries} exceeded")
                        raise
                    last_error = e
                    retry_number += 1
                    delay = policy.backoff(e, retry_number)
                    logger.debug(f"Transient error on attempt {retry_number}, retrying in {delay * 1000:.1f}ms: {e}")
                    await asyncio.sleep(delay)
    except TimeoutError:
        if not deadline.expired():
            # Raised by the callee or the driver, not by our deadline
            raise
        raise TransferTimeout(policy.timeout, last_error) from None


async def _attempt(pool: Any, callee: Callable[[Any], Awaitable[T]], tx_mode: Any) -> T:
    session = await pool.acquire()
    try:
        async with session.transaction(tx_mode) as tx:
            return await callee(tx)
    finally:
        await pool.release(session)
