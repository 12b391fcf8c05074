"""Tests for the manifolio CLI commands."""

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from manifolio.cli import app
from manifolio.core.models import BetRecommendation, Outcome

SNAPSHOT_YAML = """\
markets:
  will-it-rain:
    pool: {"YES": 150, "NO": 100}
    orders:
      - {id: o1, user_id: bob, outcome: "NO", order_amount: 50, limit_prob: 0.45}
    balances: {bob: 500}
  broke-maker:
    pool: {"YES": 150, "NO": 100}
    orders:
      - {id: o9, user_id: carl, outcome: "NO", order_amount: 50, limit_prob: 0.45}
    balances: {carl: 0.001}
users:
  alice:
    balance: 1000
    loans: 25
    positions:
      - {probability: 0.7, payout: 200, contract_id: other-market}
      - {probability: 0.2, payout: 50}
"""


@pytest.fixture
def snapshot_file(tmp_path: Path) -> Path:
    """Create a temporary YAML snapshot."""
    f = tmp_path / "snapshot.yaml"
    f.write_text(SNAPSHOT_YAML)
    return f


class TestRecommendCommand:
    """Tests for the recommend command."""

    def test_naive_recommendation(self, snapshot_file: Path) -> None:
        """Test the naive stake is the Kelly fraction of the effective bankroll."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            [
                "recommend",
                "will-it-rain",
                "alice",
                "--snapshot",
                str(snapshot_file),
                "--estimate",
                "0.6",
                "--deference",
                "0.5",
                "--strategy",
                "naive",
            ],
        )
        assert result.exit_code == 0, result.output
        # bankroll 1000 - 25 + 150, fraction 0.5 * 0.2 / 0.6
        assert "Effective bankroll: 1,125.00" in result.output
        assert "Outcome:           YES" in result.output
        assert "Amount:            187.50" in result.output

    def test_full_recommendation(self, snapshot_file: Path) -> None:
        """Test the full solver recommends less than the naive stake on a thin pool."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            [
                "recommend",
                "will-it-rain",
                "alice",
                "--snapshot",
                str(snapshot_file),
                "--estimate",
                "0.6",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Market:            will-it-rain (40.00%)" in result.output
        assert "Outcome:           YES" in result.output
        assert "Amount:            187.50" not in result.output

    def test_passes_configured_settings(self, snapshot_file: Path) -> None:
        """Test default deference and iterations come from settings."""
        recommendation = BetRecommendation(
            amount=12.5, outcome=Outcome.NO, shares=20, probability_after=0.35
        )
        runner = CliRunner()
        with patch(
            "manifolio.cli.recommend_cmd.recommend_bet", return_value=recommendation
        ) as mock_recommend:
            result = runner.invoke(
                app,
                [
                    "recommend",
                    "will-it-rain",
                    "alice",
                    "--snapshot",
                    str(snapshot_file),
                    "--estimate",
                    "0.3",
                ],
            )
        assert result.exit_code == 0, result.output
        assert "Outcome:           NO" in result.output
        assert "Amount:            12.50" in result.output
        args, kwargs = mock_recommend.call_args
        assert args[0] == 0.3
        assert args[1] == 0.5
        assert kwargs["iterations"] == 10
        assert kwargs["excluding_market_id"] == "will-it-rain"

    def test_missing_market_exits_with_error(self, snapshot_file: Path) -> None:
        """Test an unknown market is reported and exits with status 1."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            ["recommend", "nope", "alice", "--snapshot", str(snapshot_file), "--estimate", "0.6"],
        )
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_certain_estimate_exits_with_error(self, snapshot_file: Path) -> None:
        """Test an estimate of exactly 1 is rejected."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            [
                "recommend",
                "will-it-rain",
                "alice",
                "--snapshot",
                str(snapshot_file),
                "--estimate",
                "1",
            ],
        )
        assert result.exit_code == 1
        assert "estimated probability" in result.output


class TestSimulateCommand:
    """Tests for the simulate command."""

    def test_pool_only_fill(self, snapshot_file: Path) -> None:
        """Test a small bet fills entirely against the pool."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            ["simulate", "will-it-rain", "--snapshot", str(snapshot_file), "--amount", "10"],
        )
        assert result.exit_code == 0, result.output
        assert "Probability: 40.00% ->" in result.output
        assert "Filled:      10.00 of 10.00" in result.output
        assert "pool" in result.output

    def test_fill_against_order(self, snapshot_file: Path) -> None:
        """Test a large bet reaches the resting order."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            ["simulate", "will-it-rain", "--snapshot", str(snapshot_file), "--amount", "100"],
        )
        assert result.exit_code == 0, result.output
        assert "o1" in result.output

    def test_underfunded_maker_is_skipped(self, snapshot_file: Path) -> None:
        """Test orders whose maker cannot pay are listed as skipped."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            ["simulate", "broke-maker", "--snapshot", str(snapshot_file), "--amount", "100"],
        )
        assert result.exit_code == 0, result.output
        assert "Orders skipped for insufficient balance: o9" in result.output

    def test_lowercase_outcome(self, snapshot_file: Path) -> None:
        """Test the outcome option is case-insensitive."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            [
                "simulate",
                "will-it-rain",
                "--snapshot",
                str(snapshot_file),
                "--amount",
                "10",
                "--outcome",
                "no",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Probability: 40.00% -> 3" in result.output


class TestDistributionCommand:
    """Tests for the distribution command."""

    def test_cartesian(self) -> None:
        """Test the exact PMF with its cumulative column and moments."""
        runner = CliRunner()
        result = runner.invoke(app, ["distribution", "0.3:2", "0.5:3"])
        assert result.exit_code == 0, result.output
        assert "Expected value: 2.1000" in result.output
        assert "Variance:       3.0900" in result.output
        assert "1.0000" in result.output

    def test_monte_carlo(self) -> None:
        """Test the sampled PMF is close to the exact moments."""
        runner = CliRunner()
        result = runner.invoke(
            app,
            ["distribution", "0.3:2", "0.5:3", "--method", "monte-carlo", "--samples", "20000"],
        )
        assert result.exit_code == 0, result.output
        assert "Expected value: 2.1" in result.output or "Expected value: 2.0" in result.output

    def test_bad_position_is_rejected(self) -> None:
        """Test a position without a payout is a usage error."""
        runner = CliRunner()
        result = runner.invoke(app, ["distribution", "0.3"])
        assert result.exit_code == 2
