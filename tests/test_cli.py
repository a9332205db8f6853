"""Tests for the command line interface."""

import pytest
import ydb
from click.testing import CliRunner

from ledger_bench import __version__, cli as cli_module
from ledger_bench.cli import cli, setup_logging
from ledger_bench.metrics import MetricsCollector

BASE_ARGS = ["-e", "grpc://localhost:2136", "-d", "/local"]


class FakeRunner:
    instances = []
    connection_error = None
    run_error = None

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.table_folder = kwargs["table_folder"]
        self.init_calls = []
        self.run_calls = []
        FakeRunner.instances.append(self)

    def test_connection(self):
        if FakeRunner.connection_error is not None:
            raise FakeRunner.connection_error

    def init_tables(self, accounts):
        self.init_calls.append(accounts)

    def run(self, accounts, interval, max_amount, policy, skip_init, seed):
        self.run_calls.append((accounts, interval, max_amount, policy, skip_init, seed))
        if FakeRunner.run_error is not None:
            raise FakeRunner.run_error
        return MetricsCollector()


@pytest.fixture(autouse=True)
def fake_runner(monkeypatch):
    FakeRunner.instances = []
    FakeRunner.connection_error = None
    FakeRunner.run_error = None
    monkeypatch.setattr(cli_module, "Runner", FakeRunner)
    return FakeRunner


class TestSetupLogging:
    def test_invalid_level(self) -> None:
        with pytest.raises(ValueError):
            setup_logging("VERBOSE")

    def test_valid_level(self) -> None:
        assert setup_logging("WARNING") is None


class TestCli:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_prefix_path(self) -> None:
        result = CliRunner().invoke(cli, BASE_ARGS + ["--prefix-path", "bad;name", "init"])
        assert result.exit_code == 2
        assert "Invalid table folder name" in result.output

    def test_connection_failure(self, fake_runner) -> None:
        fake_runner.connection_error = ydb.issues.ConnectionFailure("endpoint unreachable")
        result = CliRunner().invoke(cli, BASE_ARGS + ["init"])
        assert result.exit_code == 1
        assert "Error testing database connection" in result.output

    def test_init(self, fake_runner) -> None:
        result = CliRunner().invoke(cli, BASE_ARGS + ["--prefix-path", "bench", "init", "--accounts", "50"])
        assert result.exit_code == 0, result.output
        runner = fake_runner.instances[0]
        assert runner.table_folder == "bench"
        assert runner.init_calls == [50]

    def test_init_requires_two_accounts(self) -> None:
        result = CliRunner().invoke(cli, BASE_ARGS + ["init", "--accounts", "1"])
        assert result.exit_code == 2

    def test_run_defaults(self, fake_runner) -> None:
        result = CliRunner().invoke(cli, BASE_ARGS + ["run"])
        assert result.exit_code == 0, result.output
        accounts, interval, max_amount, policy, skip_init, seed = fake_runner.instances[0].run_calls[0]
        assert (accounts, interval, max_amount, skip_init, seed) == (1000, 0.1, 100, False, None)
        assert policy.timeout == 1.0
        assert policy.max_retries is None
        assert "TRANSFER METRICS" in result.output

    def test_run_options(self, fake_runner) -> None:
        result = CliRunner().invoke(
            cli,
            BASE_ARGS
            + [
                "run",
                "--accounts",
                "10",
                "--interval",
                "0.5",
                "--timeout",
                "2",
                "--max-amount",
                "7",
                "--max-retries",
                "3",
                "--skip-init",
                "--seed",
                "42",
            ],
        )
        assert result.exit_code == 0, result.output
        accounts, interval, max_amount, policy, skip_init, seed = fake_runner.instances[0].run_calls[0]
        assert (accounts, interval, max_amount, skip_init, seed) == (10, 0.5, 7, True, 42)
        assert policy.timeout == 2.0
        assert policy.max_retries == 3

    @pytest.mark.parametrize("option", ["--interval", "--timeout", "--max-amount"])
    def test_run_rejects_non_positive(self, option) -> None:
        result = CliRunner().invoke(cli, BASE_ARGS + ["run", option, "0"])
        assert result.exit_code == 2

    def test_run_rejects_negative_retries(self) -> None:
        result = CliRunner().invoke(cli, BASE_ARGS + ["run", "--max-retries", "-1"])
        assert result.exit_code == 2

    def test_run_driver_timeout(self, fake_runner) -> None:
        fake_runner.run_error = TimeoutError("driver is not ready")
        result = CliRunner().invoke(cli, BASE_ARGS + ["run"])
        assert result.exit_code == 1
        assert "Error running simulation" in result.output
        assert not isinstance(result.exception, TimeoutError)
