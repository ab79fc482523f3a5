"""Tests for the command line interface."""

import json
import logging
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from miditone import cli
from miditone.cli import app, parse_filter
from miditone.models.errors import ConfigurationError, FailureRecord, StoreError
from miditone.models.stats import StatsSummary

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """configure_logging replaces the root handlers; put them back."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _summary(failed=0):
    return StatsSummary(
        total=3,
        processed=3,
        successful=3 - failed,
        failed=failed,
        progress=100.0,
        duration_ms=12,
        rate=250.0,
        failures=[FailureRecord(hash=f"h{i}", error="boom") for i in range(failed)],
    )


@pytest.fixture
def env(settings):
    """Patch everything that would touch MongoDB or the external tools."""
    with (
        patch.object(cli, "get_settings", return_value=settings) as get_settings,
        patch.object(cli, "validate_runtime") as validate,
        patch.object(cli, "AppContext") as context,
        patch.object(cli, "run_batch", return_value=_summary()) as run_batch,
        patch.object(cli, "count_candidates", return_value=7) as count,
        patch.object(cli, "dry_run") as dry_run,
    ):
        yield {
            "get_settings": get_settings,
            "validate": validate,
            "context": context,
            "run_batch": run_batch,
            "count": count,
            "dry_run": dry_run,
        }


class TestParseFilter:
    def test_empty(self):
        assert parse_filter(None) == {}

    def test_object(self):
        assert parse_filter('{"genre": "jazz"}') == {"genre": "jazz"}

    def test_invalid_json(self):
        with pytest.raises(ConfigurationError, match="valid JSON"):
            parse_filter("{genre")

    def test_not_an_object(self):
        with pytest.raises(ConfigurationError, match="JSON object"):
            parse_filter("[1, 2]")


class TestCli:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "miditone version" in result.output

    def test_run_success(self, env):
        result = runner.invoke(app, ["--limit", "3", "--concurrency", "2", "--filter", '{"a": 1}'])
        assert result.exit_code == 0
        env["validate"].assert_called_once()
        kwargs = env["run_batch"].call_args.kwargs
        assert kwargs == {"limit": 3, "filter": {"a": 1}, "concurrency": 2}
        report = json.loads(result.stdout[result.stdout.index("{") :])
        assert report["successful"] == 3

    def test_failures_exit_nonzero(self, env):
        env["run_batch"].return_value = _summary(failed=1)
        result = runner.invoke(app, [])
        assert result.exit_code == 1

    def test_stats_only(self, env):
        result = runner.invoke(app, ["--stats-only"])
        assert result.exit_code == 0
        assert "Matching documents: 7" in result.stdout
        env["validate"].assert_not_called()
        env["run_batch"].assert_not_called()

    def test_dry_run(self, env):
        result = runner.invoke(app, ["--dry-run"])
        assert result.exit_code == 0
        assert "Configuration OK" in result.stdout
        env["dry_run"].assert_called_once()
        env["run_batch"].assert_not_called()

    def test_skip_failed_flag(self, env):
        runner.invoke(app, ["--skip-failed"])
        env["get_settings"].assert_called_once_with(skip_failed=True)

    def test_concurrency_out_of_range(self, env):
        result = runner.invoke(app, ["--concurrency", "25"])
        assert result.exit_code == 2
        env["run_batch"].assert_not_called()

    def test_invalid_filter(self, env):
        result = runner.invoke(app, ["--filter", "{oops"])
        assert result.exit_code == 1
        env["run_batch"].assert_not_called()

    def test_store_error(self, env):
        env["run_batch"].side_effect = StoreError("connection refused")
        result = runner.invoke(app, [])
        assert result.exit_code == 1

    def test_interrupt(self, env):
        env["run_batch"].side_effect = KeyboardInterrupt
        result = runner.invoke(app, [])
        assert result.exit_code == 130

    def test_bad_settings(self, env):
        env["get_settings"].side_effect = ConfigurationError("bit_depth: bad")
        result = runner.invoke(app, [])
        assert result.exit_code == 1
        env["context"].assert_not_called()

    def test_missing_env_file(self, env, tmp_path):
        result = runner.invoke(app, ["--env-file", str(tmp_path / "nope.env")])
        assert result.exit_code == 1
        env["get_settings"].assert_not_called()
