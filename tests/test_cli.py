"""
Tests for the Typer CLI running against the bundled mock data.
"""

import pytest
from typer.testing import CliRunner

from slotsniper.cli.app import app

runner = CliRunner()

FAST_CONFIG = """
user_id: "1"
department_id: "200"
member_id: "3"
session_id: "s"
schedule:
  discovery_interval_seconds: 60
  availability_interval_seconds: 0.05
  acquisition_interval_seconds: 0.02
  request_delay_seconds: 0
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(FAST_CONFIG, encoding="utf-8")
    return path


def test_run_mock_claims_first_available_slot(config_file):
    result = runner.invoke(app, ["run", "--mock", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "Reservation confirmed" in result.output
    assert "880001" in result.output


def test_providers_lists_only_eligible(config_file):
    result = runner.invoke(app, ["providers", "--mock", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "张伟" in result.output
    assert "李娜" in result.output
    assert "王强" not in result.output


def test_candidates_lists_expanded_slots(config_file):
    result = runner.invoke(app, ["candidates", "--mock", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "3 claimable candidate(s)" in result.output
    assert "D4" not in result.output


def test_check_mock_passes(config_file):
    result = runner.invoke(app, ["check", "--mock", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert "Pre-booking checks" in result.output


def test_missing_config_is_fatal(tmp_path):
    result = runner.invoke(app, ["run", "--mock", "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1
    assert "No slotsniper config" in result.output


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output
