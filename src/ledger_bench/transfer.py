import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import ydb

from .constants import ACCOUNT_TABLE, BALANCE_PRECISION, BALANCE_SCALE
from .errors import ErrorKind, classify
from .retry import RetryPolicy, execute_in_transaction

logger = logging.getLogger(__name__)

# The first branch keeps a self-transfer from touching the balance.
TRANSFER_QUERY = """
DECLARE $from_id AS Utf8;
DECLARE $to_id AS Utf8;
DECLARE $amount AS Decimal({precision}, {scale});

UPDATE `{table_folder}/{table}`
SET balance = CASE
    WHEN $from_id = $to_id THEN balance
    WHEN id = $from_id THEN balance - $amount
    WHEN id = $to_id THEN balance + $amount
    ELSE balance
END
WHERE id IN ($from_id, $to_id);
"""


@dataclass
class TransferResult:
    """Outcome of a single transfer."""

    from_id: str
    to_id: str
    amount: int
    elapsed: float
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind:
        """Outcome kind as seen by the caller. Transient errors never leak out."""
        kind = classify(self.error)
        if kind == ErrorKind.TRANSIENT:
            # Retry limit exhausted, nothing left to retry.
            return ErrorKind.PERMANENT
        return kind

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0


class TransferExecutor:
    """
    Moves an amount between two accounts in one serializable transaction.

    Transient conflicts are retried by execute_in_transaction until the
    policy deadline; the caller only sees the final outcome and its wall
    clock cost.
    """

    def __init__(
        self,
        pool: Any,
        table_folder: str = "ledger",
        policy: Optional[RetryPolicy] = None,
    ):
        """
        Args:
            pool: YDB query session pool
            table_folder: Folder holding the account table (default: "ledger")
            policy: Retry policy (default: RetryPolicy())
        """
        self._pool = pool
        self._table_folder = table_folder
        self._policy = policy if policy is not None else RetryPolicy()
        self._query = TRANSFER_QUERY.format(
            table_folder=table_folder,
            table=ACCOUNT_TABLE,
            precision=BALANCE_PRECISION,
            scale=BALANCE_SCALE,
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def query(self) -> str:
        return self._query

    def _build_parameters(self, from_id: str, to_id: str, amount: int) -> Dict[str, Any]:
        return {
            "$from_id": ydb.TypedValue(from_id, ydb.PrimitiveType.Utf8),
            "$to_id": ydb.TypedValue(to_id, ydb.PrimitiveType.Utf8),
            "$amount": ydb.TypedValue(Decimal(amount), ydb.DecimalType(BALANCE_PRECISION, BALANCE_SCALE)),
        }

    async def transfer(self, from_id: str, to_id: str, amount: int) -> TransferResult:
        """
        Transfer ``amount`` from ``from_id`` to ``to_id``.

        Timeouts and database errors are returned in the result rather than
        raised, so that the elapsed time is always reported.

        Args:
            from_id: Account to debit
            to_id: Account to credit
            amount: Non-negative amount to move

        Returns:
            TransferResult with the elapsed time and the error, if any

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Transfer amount can't be negative: {amount}")

        parameters = self._build_parameters(from_id, to_id, amount)

        async def _body(tx: Any) -> None:
            async with await tx.execute(self._query, parameters=parameters, commit_tx=True) as results:
                async for _ in results:
                    # Drain the stream so the commit completes
                    pass

        error: Optional[BaseException] = None
        start_time = time.monotonic()
        try:
            await execute_in_transaction(self._pool, _body, self._policy)
        except Exception as e:
            # Timeouts and database errors alike end up in the result
            error = e
        elapsed = time.monotonic() - start_time

        return TransferResult(from_id, to_id, amount, elapsed, error)
