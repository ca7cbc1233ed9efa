"""Tests for the cengine CLI."""

import json
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from commission_engine.cli.main import cli


@pytest.fixture
def temp_home():
    """Create temporary data and config locations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def invoke(temp_home, monkeypatch):
    monkeypatch.delenv("CE_NOTIFICATIONS_ENABLED", raising=False)
    runner = CliRunner()
    store = ["--data", str(temp_home / "data"), "--config", str(temp_home / "config.json")]

    def _invoke(*args):
        return runner.invoke(cli, list(args) + store)
    return _invoke


class TestCli:
    """Tests for CLI commands."""

    def test_init(self, invoke, temp_home):
        """init writes the config file."""
        result = invoke("init")
        assert result.exit_code == 0
        assert (temp_home / "config.json").exists()
        assert (temp_home / "data").is_dir()

    def test_calculate_flow(self, invoke):
        """Agents, leads and commissions persist between commands."""
        assert invoke("init").exit_code == 0
        assert invoke("add-agent", "a1", "--name", "Ada", "--tier", "gold", "--region", "north").exit_code == 0
        assert invoke("add-lead", "l1", "a1", "--value", "12000").exit_code == 0

        result = invoke("calculate", "l1", "12000", "--days", "5")
        assert result.exit_code == 0, result.output
        assert "2,075.00" in result.output

    def test_unknown_tier_rejected(self, invoke):
        """Agents cannot start on a tier outside the catalog."""
        result = invoke("add-agent", "a1", "--tier", "diamond")
        assert result.exit_code == 1
        assert "ConfigurationError" in result.output

    def test_unknown_lead(self, invoke):
        """Engine errors exit non-zero with a message."""
        result = invoke("calculate", "ghost", "100")
        assert result.exit_code == 1
        assert "NotFound" in result.output

    def test_report_to_file(self, invoke, temp_home):
        """The report can be saved as JSON."""
        invoke("add-agent", "a1")
        invoke("add-lead", "l1", "a1")
        invoke("calculate", "l1", "1000")

        output = temp_home / "report.json"
        result = invoke("report", "--output", str(output))
        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data["summary"]["total_commissions"] == 1

    def test_payouts_nothing_due(self, invoke):
        """New commissions are not due until next month's payout day."""
        invoke("add-agent", "a1")
        invoke("add-lead", "l1", "a1")
        invoke("calculate", "l1", "1000")

        result = invoke("payouts")
        assert result.exit_code == 0
        assert "No commissions due" in result.output

    def test_leaderboard(self, invoke):
        """The leaderboard lists agents."""
        invoke("add-agent", "a1", "--name", "Ada")
        result = invoke("leaderboard")
        assert result.exit_code == 0
        assert "Ada" in result.output

    def test_reassign_moves_lead_count(self, invoke, temp_home):
        """Reassigning a lead moves it to the new agent."""
        invoke("add-agent", "a1")
        invoke("add-agent", "a2")
        invoke("add-lead", "l1", "a1")

        result = invoke("reassign", "l1", "a2", "--reason", "Territory change")
        assert result.exit_code == 0, result.output
        assert "from a1 to a2" in result.output

        data = json.loads((temp_home / "data" / "leads.json").read_text())
        lead = next(l for l in data["leads"] if l["id"] == "l1")
        assert lead["agent_id"] == "a2"
        assert lead["reassignment_history"][0]["from_agent"] == "a1"

    def test_summary_and_points(self, invoke):
        """The summary lists commissions by status and points add up."""
        invoke("add-agent", "a1")
        invoke("add-lead", "l1", "a1")
        invoke("calculate", "l1", "1000")

        result = invoke("summary", "a1")
        assert result.exit_code == 0, result.output
        assert "pending" in result.output

        result = invoke("points", "a1", "5", "--reason", "Mentoring")
        assert result.exit_code == 0, result.output
        assert "15 tier points" in result.output

    def test_auto_approve(self, invoke):
        """Small pending commissions are approved in bulk."""
        invoke("add-agent", "a1")
        invoke("add-lead", "l1", "a1")
        invoke("calculate", "l1", "1000")

        result = invoke("auto-approve")
        assert result.exit_code == 0, result.output
        assert "1 commissions approved" in result.output
        assert "No overdue commissions" in invoke("overdue").output
