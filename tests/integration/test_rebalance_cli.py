"""
Rebalance CLI Integration Tests

Runs the calculate and validate commands end to end on the example index.
"""

import logging
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from index_rebalancer.reporting.report import load_report
from index_rebalancer.utils.config import load_index_config
from scripts.rebalance import cli

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
INDEX_FILE = str(CONFIG_DIR / "example_index.yaml")
SNAPSHOT_FILE = str(CONFIG_DIR / "example_snapshot.yaml")


@pytest.fixture(autouse=True)
def restore_logging():
    """The commands reconfigure the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def report_prefix(runner, tmp_path: Path) -> Path:
    """Report written by the calculate command."""
    prefix = tmp_path / "dpi" / "rebalance-test"
    result = runner.invoke(cli, ["calculate", INDEX_FILE, SNAPSHOT_FILE, "--output", str(prefix)])
    assert result.exit_code == 0, result.output
    return prefix


def write_updated_snapshot(report_prefix: Path, path: Path) -> Path:
    """Write contract state as it would read after submitting the report."""
    index_config = load_index_config(INDEX_FILE)
    report = load_report(report_prefix)

    with open(SNAPSHOT_FILE, encoding="utf-8") as f:
        snapshot = yaml.safe_load(f)

    execution_info = {}
    for allocation in report.summary:
        quote = index_config.registry[allocation.asset]
        params = index_config.strategy[allocation.asset]
        execution_info[quote.address] = {
            "max_size": str(params.max_trade_size * 10**quote.decimals // 10**18),
            "exchange_name": params.exchange,
            "cool_off_period": params.cool_off_period,
            "target_unit": str(allocation.new_unit),
        }
    snapshot["execution_info"] = execution_info

    path.write_text(yaml.safe_dump(snapshot, sort_keys=False))
    return path


class TestCalculateCommand:
    """Test the calculate command."""

    def test_calculate_prints_plan(self, runner) -> None:
        """Test tables, fund value and trade order are printed."""
        result = runner.invoke(cli, ["calculate", INDEX_FILE, SNAPSHOT_FILE])

        assert result.exit_code == 0, result.output
        assert "DPI Rebalance Summary" in result.output
        assert "Trade Order" in result.output
        assert "Fund value per share: 340.53 USD" in result.output
        assert "Trade order:" in result.output

    def test_calculate_without_trade_table(self, runner) -> None:
        """Test --no-show-trades omits the trade table."""
        result = runner.invoke(cli, ["calculate", INDEX_FILE, SNAPSHOT_FILE, "--no-show-trades"])

        assert result.exit_code == 0, result.output
        assert "Trade Order" not in result.output
        assert "Trade order:" in result.output

    def test_calculate_writes_report(self, report_prefix: Path) -> None:
        """Test --output writes the JSON and text report."""
        json_path = report_prefix.with_name(report_prefix.name + ".json")
        text_path = report_prefix.with_name(report_prefix.name + ".txt")

        assert json_path.exists()
        assert text_path.exists()
        report = load_report(json_path)
        assert [a.asset for a in report.summary] == ["YFI", "COMP", "SNX", "MKR", "UNI", "AAVE"]

    def test_calculate_invalid_config(self, runner, tmp_path: Path) -> None:
        """Test configuration errors exit with status 1."""
        config = yaml.safe_load(Path(INDEX_FILE).read_text())
        config["allocation"]["method"] = "market_cap"
        bad_config = tmp_path / "bad_index.yaml"
        bad_config.write_text(yaml.safe_dump(config, sort_keys=False))

        result = runner.invoke(cli, ["calculate", str(bad_config), SNAPSHOT_FILE])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestValidateCommand:
    """Test the validate command."""

    def test_validate_updated_state(self, runner, report_prefix: Path, tmp_path: Path) -> None:
        """Test contract state matching the report validates."""
        updated = write_updated_snapshot(report_prefix, tmp_path / "snapshot-after.yaml")

        result = runner.invoke(
            cli, ["validate", INDEX_FILE, str(report_prefix) + ".json", str(updated)]
        )

        assert result.exit_code == 0, result.output
        assert "All parameters verified!" in result.output

    def test_validate_stale_state(self, runner, report_prefix: Path) -> None:
        """Test the pre-update snapshot fails validation."""
        result = runner.invoke(
            cli, ["validate", INDEX_FILE, str(report_prefix) + ".json", SNAPSHOT_FILE]
        )

        assert result.exit_code == 1
        assert "Validation failed:" in result.output

    def test_validate_missing_report(self, runner, tmp_path: Path) -> None:
        """Test a missing report file exits with status 1."""
        result = runner.invoke(
            cli, ["validate", INDEX_FILE, str(tmp_path / "missing.json"), SNAPSHOT_FILE]
        )

        assert result.exit_code == 1
        assert "Report file not found" in result.output
