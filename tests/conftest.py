"""Pytest configuration and fixtures

Provides an in-memory stand-in for a YDB query session pool. Transactions
apply the transfer statement's parameters on commit and use optimistic
locking on the two touched rows, so concurrent transfers conflict the way
serializable transactions do in YDB (the loser gets ``Aborted``).
"""

import asyncio
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
import ydb

from ledger_bench.retry import RetryPolicy


class FakeResults:
    async def __aenter__(self) -> "FakeResults":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False

    def __aiter__(self) -> "FakeResults":
        return self

    async def __anext__(self):
        raise StopAsyncIteration


class FakeLedger:
    """Account balances plus fault injection knobs."""

    def __init__(self):
        self.balances: Dict[str, Decimal] = {}
        self.versions: Dict[str, int] = {}
        # Raised one per attempt, in order; None lets the attempt through
        self.failures: List[Optional[Exception]] = []
        # Raised on every attempt once ``failures`` is exhausted
        self.persistent_failure: Optional[Exception] = None
        # Seconds an attempt holds its snapshot before committing
        self.delay: float = 0.0
        self.attempts = 0
        self.commits = 0
        self.statements: List[tuple] = []

    def add_accounts(self, count: int, balance: int = 10000) -> List[str]:
        ids = [str(uuid.uuid4()) for _ in range(count)]
        for account_id in ids:
            self.balances[account_id] = Decimal(balance)
            self.versions[account_id] = 0
        return ids

    def total(self) -> Decimal:
        return sum(self.balances.values(), Decimal(0))

    def _take_failure(self) -> Optional[Exception]:
        if self.failures:
            return self.failures.pop(0)
        return self.persistent_failure


SELF_TRANSFER_BRANCH = "WHEN $from_id = $to_id THEN balance"


def _evaluate_case(
    query: str, account_id: str, from_id: str, to_id: str, amount: Decimal, balance: Decimal
) -> Decimal:
    """Apply the CASE branches of the transfer statement in order, first match wins."""
    if SELF_TRANSFER_BRANCH in query and from_id == to_id:
        return balance
    if account_id == from_id:
        return balance - amount
    if account_id == to_id:
        return balance + amount
    return balance


class FakeTx:
    def __init__(self, ledger: FakeLedger, tx_mode):
        self._ledger = ledger
        self.tx_mode = tx_mode

    async def __aenter__(self) -> "FakeTx":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False

    async def execute(self, query: str, parameters=None, commit_tx: bool = False) -> FakeResults:
        ledger = self._ledger
        ledger.attempts += 1
        ledger.statements.append((query, parameters, commit_tx))

        from_id = parameters["$from_id"].value
        to_id = parameters["$to_id"].value
        amount = parameters["$amount"].value

        snapshot = {i: ledger.versions.get(i) for i in (from_id, to_id)}
        failure = ledger._take_failure()
        if ledger.delay:
            await asyncio.sleep(ledger.delay)
        if failure is not None:
            raise failure
        if any(ledger.versions.get(i) != version for i, version in snapshot.items()):
            raise ydb.issues.Aborted("Transaction locks invalidated")

        if commit_tx:
            for account_id in dict.fromkeys((from_id, to_id)):
                if account_id not in ledger.balances:
                    continue
                ledger.balances[account_id] = _evaluate_case(
                    query, account_id, from_id, to_id, amount, ledger.balances[account_id]
                )
                ledger.versions[account_id] += 1
            ledger.commits += 1
        return FakeResults()


class FakeSession:
    def __init__(self, ledger: FakeLedger):
        self._ledger = ledger
        self.tx_modes: list = []

    def transaction(self, tx_mode=None) -> FakeTx:
        self.tx_modes.append(tx_mode)
        return FakeTx(self._ledger, tx_mode)


class FakePool:
    def __init__(self, ledger: FakeLedger):
        self.ledger = ledger
        self.sessions: List[FakeSession] = []
        self.acquired = 0
        self.released = 0

    async def acquire(self) -> FakeSession:
        self.acquired += 1
        session = FakeSession(self.ledger)
        self.sessions.append(session)
        return session

    async def release(self, session: FakeSession) -> None:
        self.released += 1


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def pool(ledger: FakeLedger) -> FakePool:
    return FakePool(ledger)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy with millisecond backoffs so retry tests stay quick."""
    return RetryPolicy(
        timeout=1.0,
        fast_backoff=ydb.BackoffSettings(ceiling=0, slot_duration=0.001),
        slow_backoff=ydb.BackoffSettings(ceiling=0, slot_duration=0.001),
    )
