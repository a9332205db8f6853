#!/usr/bin/env python3
import logging
import re
import sys
from typing import Any, Optional

import click
import ydb
from click_option_group import optgroup

from . import __version__
from .constants import DEFAULT_ACCOUNTS, MAX_AMOUNT, TICK_INTERVAL, TRANSFER_TIMEOUT
from .retry import RetryPolicy
from .runner import Runner


def setup_logging(log_level_str: str) -> None:
    """Convert a log level name into a numeric level and configure logging."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    if log_level_str not in level_map:
        raise ValueError(
            f"Invalid log level: {log_level_str}. " f"Valid values: {list(level_map.keys())}"
        )

    log_level = level_map[log_level_str]

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - PID:%(process)d - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def validate_table_folder(_ctx: Any, _param: Any, table_folder: str) -> str:
    """
    Validate and sanitize table folder name to prevent SQL injection.
    """
    if not re.match(r"^[a-zA-Z0-9_\-\/]+$", table_folder):
        raise click.BadParameter(
            f"Invalid table folder name '{table_folder}'. "
            "Only alphanumeric characters, underscores, hyphens and slashes are allowed."
        )
    return table_folder


def validate_positive(_ctx: Any, param: Any, value: Optional[float]) -> Optional[float]:
    if value is not None and value <= 0:
        raise click.BadParameter(f"{param.name} must be positive, got {value}")
    return value


def validate_accounts(_ctx: Any, _param: Any, value: int) -> int:
    if value < 2:
        raise click.BadParameter(f"At least two accounts are required, got {value}")
    return value


def validate_retries(_ctx: Any, _param: Any, value: Optional[int]) -> Optional[int]:
    if value is not None and value < 0:
        raise click.BadParameter(f"Retry limit can't be negative, got {value}")
    return value


@click.group()
@click.version_option(__version__, message="%(version)s")
@click.option(
    "--endpoint",
    "-e",
    envvar="YDB_ENDPOINT",
    required=True,
    help="Endpoint to connect. (e.g., grpcs://host:2135)",
)
@click.option(
    "--database",
    "-d",
    envvar="YDB_DATABASE",
    required=True,
    help="Database to work with (e.g., /Root/database)",
)
@click.option("--ca-file", envvar="YDB_ROOT_CERT", help="Path to root certificate file")
@click.option("--user", envvar="YDB_USER", help="Username for authentication")
@click.option("--password", envvar="YDB_PASSWORD", help="Password for authentication")
@click.option(
    "--prefix-path",
    envvar="YDB_PREFIX_PATH",
    default="ledger",
    callback=validate_table_folder,
    help="Folder name for tables (default: ledger)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default="INFO",
    help="Logging level (default: INFO)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    endpoint: str,
    database: str,
    ca_file: Optional[str],
    user: Optional[str],
    password: Optional[str],
    prefix_path: str,
    log_level: str,
) -> None:
    """YDB ledger transfer load generator."""
    setup_logging(log_level)

    runner = Runner(
        endpoint=endpoint,
        database=database,
        root_certificates_file=ca_file,
        user=user,
        password=password,
        table_folder=prefix_path,
    )
    try:
        runner.test_connection()
    except (ydb.Error, TimeoutError) as e:
        raise click.ClickException(f"Error testing database connection: {e}")

    ctx.ensure_object(dict)
    ctx.obj["runner"] = runner


@cli.command()
@click.option(
    "--accounts",
    "-a",
    type=int,
    default=DEFAULT_ACCOUNTS,
    callback=validate_accounts,
    help=f"Number of accounts to create (default: {DEFAULT_ACCOUNTS})",
)
@click.pass_context
def init(ctx: click.Context, accounts: int) -> None:
    """Recreate the account table and seed it."""
    runner = ctx.obj["runner"]

    click.echo(f"Initializing database with prefix_path={runner.table_folder}, accounts={accounts}")
    try:
        runner.init_tables(accounts)
    except (ydb.Error, TimeoutError) as e:
        raise click.ClickException(f"Error initialising database: {e}")

    click.echo("Initialization completed")


@cli.command()
@click.option(
    "--accounts",
    "-a",
    type=int,
    default=DEFAULT_ACCOUNTS,
    callback=validate_accounts,
    help=f"Number of accounts to seed and draw transfers from (default: {DEFAULT_ACCOUNTS})",
)
@click.option(
    "--interval",
    "-i",
    type=float,
    default=TICK_INTERVAL,
    callback=validate_positive,
    help=f"Seconds between two transfers (default: {TICK_INTERVAL})",
)
@click.option(
    "--skip-init",
    is_flag=True,
    help="Reuse the existing account table instead of recreating it",
)
@click.option("--seed", type=int, help="Seed for account pair and amount selection")
@optgroup.group("Transfer parameters", help="How each transfer is bounded and retried.")
@optgroup.option(
    "--timeout",
    type=float,
    default=TRANSFER_TIMEOUT,
    callback=validate_positive,
    help=f"Deadline in seconds for one transfer including retries (default: {TRANSFER_TIMEOUT})",
)
@optgroup.option(
    "--max-amount",
    type=int,
    default=MAX_AMOUNT,
    callback=validate_positive,
    help=f"Amounts are drawn from [0, max-amount) (default: {MAX_AMOUNT})",
)
@optgroup.option(
    "--max-retries",
    type=int,
    callback=validate_retries,
    help="Retry limit on transient conflicts (default: retry until the deadline)",
)
@click.pass_context
def run(
    ctx: click.Context,
    accounts: int,
    interval: float,
    skip_init: bool,
    seed: Optional[int],
    timeout: float,
    max_amount: int,
    max_retries: Optional[int],
) -> None:
    """Run transfers until interrupted."""
    runner = ctx.obj["runner"]

    click.echo(
        f"Running transfers with prefix_path={runner.table_folder}, accounts={accounts}, "
        f"interval={interval}s, timeout={timeout}s, max_amount={max_amount}"
    )

    policy = RetryPolicy(timeout=timeout, max_retries=max_retries)
    try:
        metrics = runner.run(accounts, interval, max_amount, policy, skip_init, seed)
    except (ydb.Error, TimeoutError) as e:
        raise click.ClickException(f"Error running simulation: {e}")

    metrics.print_summary()

    click.echo("Workload completed")


if __name__ == "__main__":
    cli()
