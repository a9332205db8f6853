import asyncio
import logging
import random
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import ydb

from .constants import DEFAULT_ACCOUNTS, MAX_AMOUNT, TICK_INTERVAL
from .initializer import Initializer
from .job import LoopState, run_work_loop
from .metrics import MetricsCollector
from .retry import RetryPolicy
from .transfer import TransferExecutor

logger = logging.getLogger(__name__)


class Runner:
    def __init__(
        self,
        endpoint: str,
        database: str,
        root_certificates_file: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        table_folder: str = "ledger",
        timeout: int = 5,
    ):
        """
        Initialize Runner with YDB connection parameters.

        Args:
            endpoint: YDB endpoint (e.g., "grpcs://ydb-host:2135")
            database: Database path (e.g., "/Root/database")
            root_certificates_file: Optional path to root certificate file for TLS
            user: Optional username for authentication
            password: Optional password for authentication
            table_folder: Folder name for tables (default: "ledger")
            timeout: Connection timeout in seconds (default: 5)
        """
        self._endpoint = endpoint
        self._database = database
        self._timeout = timeout
        self.table_folder = table_folder

        # Load root certificates from file if provided
        root_certificates = None
        if root_certificates_file:
            root_certificates = ydb.load_ydb_root_certificate(root_certificates_file)

        self._config = ydb.DriverConfig(
            endpoint=endpoint,
            database=database,
            root_certificates=root_certificates,
        )

        self._credentials = None
        if user and password:
            self._credentials = ydb.StaticCredentials(self._config, user=user, password=password)

    @asynccontextmanager
    async def _get_pool(self) -> AsyncIterator[ydb.aio.QuerySessionPool]:
        """
        Async context manager that creates and yields a YDB QuerySessionPool.
        Handles driver initialization, connection waiting, and cleanup.
        """
        async with ydb.aio.Driver(driver_config=self._config, credentials=self._credentials) as driver:
            await driver.wait(timeout=self._timeout, fail_fast=True)
            logger.debug(f"Connected to {self._endpoint}{self._database}")
            async with ydb.aio.QuerySessionPool(driver) as pool:
                yield pool

    def test_connection(self) -> None:
        """
        Check that the database is reachable.

        Raises:
            ydb.Error: If discovery fails
            TimeoutError: If the driver is not ready within the timeout
        """

        async def _check() -> None:
            async with self._get_pool() as pool:
                await pool.execute_with_retries("SELECT 1;")

        asyncio.run(_check())
        logger.info(f"Connection to {self._endpoint}{self._database} is OK")

    def init_tables(self, accounts: int = DEFAULT_ACCOUNTS) -> None:
        """Drop, recreate and seed the account table."""

        async def _init() -> None:
            async with self._get_pool() as pool:
                await Initializer(accounts, self.table_folder).init(pool)

        asyncio.run(_init())

    def run(
        self,
        accounts: int = DEFAULT_ACCOUNTS,
        interval: float = TICK_INTERVAL,
        max_amount: int = MAX_AMOUNT,
        policy: Optional[RetryPolicy] = None,
        skip_init: bool = False,
        seed: Optional[int] = None,
    ) -> MetricsCollector:
        """
        Run the transfer workload until SIGINT or SIGTERM.

        Args:
            accounts: Number of accounts to seed and draw transfers from
            interval: Seconds between transfers
            max_amount: Transfer amounts are drawn from [0, max_amount)
            policy: Retry policy for each transfer
            skip_init: Reuse the existing table instead of recreating it
            seed: Optional seed for the pair and amount selection

        Returns:
            MetricsCollector with every transfer performed
        """
        metrics = MetricsCollector()
        asyncio.run(self._run(accounts, interval, max_amount, policy, skip_init, seed, metrics))
        return metrics

    async def _run(
        self,
        accounts: int,
        interval: float,
        max_amount: int,
        policy: Optional[RetryPolicy],
        skip_init: bool,
        seed: Optional[int],
        metrics: MetricsCollector,
    ) -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()

        async with self._get_pool() as pool:
            initializer = Initializer(accounts, self.table_folder)
            if not skip_init:
                await initializer.init(pool)

            state = LoopState(
                account_ids=await initializer.fetch_ids(pool, accounts),
                interval=interval,
                max_amount=max_amount,
            )
            executor = TransferExecutor(pool, self.table_folder, policy)

            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(signum, stop.set)
            try:
                await run_work_loop(executor, state, stop, random.Random(seed), metrics)
            finally:
                for signum in (signal.SIGINT, signal.SIGTERM):
                    loop.remove_signal_handler(signum)
