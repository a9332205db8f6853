import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from .constants import ID_DISPLAY_LENGTH, MAX_AMOUNT, TICK_INTERVAL
from .errors import ErrorKind
from .metrics import MetricsCollector
from .transfer import TransferExecutor, TransferResult

logger = logging.getLogger(__name__)


@dataclass
class LoopState:
    """
    Everything the work loop needs between ticks.

    Attributes:
        account_ids: Pool of identifiers transfer participants are drawn from
        interval: Seconds between two ticks
        max_amount: Amounts are drawn from [0, max_amount)
        iterations: Number of transfers performed so far
    """

    account_ids: List[str] = field(default_factory=list)
    interval: float = TICK_INTERVAL
    max_amount: int = MAX_AMOUNT
    iterations: int = 0


def format_result(result: TransferResult) -> str:
    """Render a transfer as ``<from> -> <to> took <n>ms`` with truncated ids."""
    line = (
        f"{result.from_id[:ID_DISPLAY_LENGTH]} -> {result.to_id[:ID_DISPLAY_LENGTH]} "
        f"took {int(result.elapsed_ms)}ms"
    )
    if result.kind == ErrorKind.TIMEOUT:
        return f"{line} (timed out)"
    if result.error is not None:
        return f"{line} (error: {result.error})"
    return line


def log_result(result: TransferResult) -> None:
    if result.kind == ErrorKind.OK:
        logger.info(format_result(result))
    elif result.kind == ErrorKind.TIMEOUT:
        logger.warning(format_result(result))
    else:
        logger.error(format_result(result))


async def run_once(
    executor: TransferExecutor,
    state: LoopState,
    rng: random.Random,
    metrics: Optional[MetricsCollector] = None,
) -> TransferResult:
    """
    Perform one transfer between two random distinct accounts.

    Args:
        executor: Transfer executor
        state: Loop state with the candidate identifiers
        rng: Random source for the pair and the amount
        metrics: Optional metrics collector

    Returns:
        Result of the transfer, already logged and recorded
    """
    from_id, to_id = rng.sample(state.account_ids, 2)
    amount = rng.randrange(state.max_amount)

    result = await executor.transfer(from_id, to_id, amount)
    state.iterations += 1

    if metrics is not None:
        metrics.record(result)
    log_result(result)
    return result


async def run_work_loop(
    executor: TransferExecutor,
    state: LoopState,
    stop: asyncio.Event,
    rng: Optional[random.Random] = None,
    metrics: Optional[MetricsCollector] = None,
) -> None:
    """
    Perform a transfer every ``state.interval`` seconds until ``stop`` is set.

    Errors never end the loop, they are logged with the transfer. Ticks that
    pass while a transfer is still running are dropped.

    Args:
        executor: Transfer executor
        state: Loop state with the candidate identifiers
        stop: Event set on shutdown, the only way out of the loop
        rng: Random source (default: a fresh random.Random)
        metrics: Optional metrics collector

    Raises:
        ValueError: If fewer than two account identifiers are available
    """
    if len(state.account_ids) < 2:
        raise ValueError(f"At least two accounts are required, got {len(state.account_ids)}")
    if rng is None:
        rng = random.Random()

    loop = asyncio.get_running_loop()
    next_tick = loop.time() + state.interval

    logger.info(f"Work loop started: {len(state.account_ids)} accounts, interval {state.interval}s")
    while not stop.is_set():
        delay = next_tick - loop.time()
        if delay > 0:
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

        missed = int((loop.time() - next_tick) // state.interval) + 1
        next_tick += max(missed, 1) * state.interval

        await run_once(executor, state, rng, metrics)

    logger.info(f"Work loop stopped after {state.iterations} transfers")
