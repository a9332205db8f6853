import logging
import uuid
from decimal import Decimal
from typing import List

import ydb

from .constants import (
    ACCOUNT_TABLE,
    BALANCE_PRECISION,
    BALANCE_SCALE,
    DEFAULT_ACCOUNTS,
    INITIAL_BALANCE,
    SEED_BATCH_SIZE,
)

logger = logging.getLogger(__name__)


class Initializer:
    def __init__(
        self,
        accounts: int = DEFAULT_ACCOUNTS,
        table_folder: str = "ledger",
        initial_balance: int = INITIAL_BALANCE,
    ):
        """
        Initialize the Initializer.

        Args:
            accounts: Number of accounts to create (default: 1000)
            table_folder: Folder name for tables (default: "ledger")
            initial_balance: Balance every account starts with (default: 10000)
        """
        if accounts < 1:
            raise ValueError(f"Number of accounts must be positive, got {accounts}")
        self._accounts = accounts
        self._table_folder = table_folder
        self._initial_balance = initial_balance

    @property
    def table_path(self) -> str:
        return f"{self._table_folder}/{ACCOUNT_TABLE}"

    async def drop_tables(self, pool: ydb.aio.QuerySessionPool) -> None:
        """Drop the account table if it exists."""
        logger.info(f"Dropping table {self.table_path}")
        await pool.execute_with_retries(f"DROP TABLE IF EXISTS `{self.table_path}`;")

    async def create_tables(self, pool: ydb.aio.QuerySessionPool) -> None:
        """Create the account table."""
        logger.info(f"Creating table {self.table_path}")
        await pool.execute_with_retries(
            f"""
            CREATE TABLE `{self.table_path}`
            (
                id Utf8,
                balance Decimal({BALANCE_PRECISION}, {BALANCE_SCALE}),
                PRIMARY KEY(id)
            );
            """
        )

    async def seed(self, pool: ydb.aio.QuerySessionPool) -> None:
        """Insert the accounts with their initial balance in batches."""
        row_type = ydb.ListType(
            ydb.StructType()
            .add_member("id", ydb.PrimitiveType.Utf8)
            .add_member("balance", ydb.DecimalType(BALANCE_PRECISION, BALANCE_SCALE))
        )
        query = f"""
            DECLARE $rows AS List<Struct<id: Utf8, balance: Decimal({BALANCE_PRECISION}, {BALANCE_SCALE})>>;

            UPSERT INTO `{self.table_path}` (id, balance)
            SELECT id, balance FROM AS_TABLE($rows);
            """

        created = 0
        while created < self._accounts:
            batch_size = min(SEED_BATCH_SIZE, self._accounts - created)
            rows = [
                {"id": str(uuid.uuid4()), "balance": Decimal(self._initial_balance)}
                for _ in range(batch_size)
            ]
            await pool.execute_with_retries(query, parameters={"$rows": ydb.TypedValue(rows, row_type)})
            created += batch_size
            logger.debug(f"Seeded {created}/{self._accounts} accounts")

        logger.info(f"Seeded {created} accounts with balance {self._initial_balance}")

    async def fetch_ids(self, pool: ydb.aio.QuerySessionPool, count: int) -> List[str]:
        """
        Return up to ``count`` account identifiers in random order.

        Args:
            pool: YDB query session pool
            count: Maximum number of identifiers to return
        """
        result_sets = await pool.execute_with_retries(
            f"""
            DECLARE $count AS Uint64;

            SELECT id FROM `{self.table_path}`
            ORDER BY Random(id)
            LIMIT $count;
            """,
            parameters={"$count": ydb.TypedValue(count, ydb.PrimitiveType.Uint64)},
        )
        ids = [row["id"] for result_set in result_sets for row in result_set.rows]
        logger.info(f"Fetched {len(ids)} account ids")
        return ids

    async def init(self, pool: ydb.aio.QuerySessionPool) -> None:
        """Recreate and seed the account table."""
        await self.drop_tables(pool)
        await self.create_tables(pool)
        await self.seed(pool)
