"""
Tests for the command line interface.
"""

import json
import logging

import pytest
from typer.testing import CliRunner

from chart_reconcile.cli import app
from chart_reconcile.infrastructure.settings import APP_VERSION, settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_root_logger():
    """The reconcile command reconfigures root logging; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestReconcileCommand:
    """Test the reconcile command."""

    def test_reconcile_with_report_and_export(self, write_snapshot, epic_document, community_document, tmp_path):
        """Test a full run that saves a report and CSV files."""
        primary = write_snapshot("epic.json", epic_document)
        secondary = write_snapshot("community.json", community_document)
        report_path = tmp_path / "out" / "report.json"
        export_dir = tmp_path / "csv"

        result = runner.invoke(app, [
            "reconcile", primary, secondary,
            "--today", "2024-06-01",
            "--report", str(report_path),
            "--export-dir", str(export_dir),
        ])

        assert result.exit_code == 0, result.output
        assert "Reconciliation complete" in result.output
        assert "critical conflict" in result.output
        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["conflicts"]["by_type"]["allergy-gap"] == 1
        assert (export_dir / "medications.csv").exists()

    def test_primary_only(self, write_snapshot, epic_document):
        """Test a run without secondary sources."""
        result = runner.invoke(app, ["reconcile", write_snapshot("epic.json", epic_document), "--today", "2024-06-01"])

        assert result.exit_code == 0, result.output
        assert "Reconciliation complete" in result.output

    def test_missing_primary_fails(self, tmp_path):
        """Test that a run with no usable data exits 1."""
        result = runner.invoke(app, ["reconcile", str(tmp_path / "missing.json")])
        assert result.exit_code == 1

    def test_invalid_today(self, write_snapshot, epic_document):
        """Test that a malformed --today exits 1."""
        result = runner.invoke(app, ["reconcile", write_snapshot("epic.json", epic_document), "--today", "June 1"])

        assert result.exit_code == 1
        assert "--today" in result.output

    def test_config_file(self, write_snapshot, epic_document, community_document, tmp_path):
        """Test that a configuration file threshold is applied."""
        community_document["demographics"].update(birth_date="1960-04-16")
        config = tmp_path / "reconcile.json"
        config.write_text(json.dumps({"reconciliation": {"match_threshold": 0.7}}), encoding="utf-8")
        report_path = tmp_path / "report.json"

        result = runner.invoke(app, [
            "reconcile",
            write_snapshot("epic.json", epic_document),
            write_snapshot("community.json", community_document),
            "--config", str(config),
            "--today", "2024-06-01",
            "--report", str(report_path),
        ])

        assert result.exit_code == 0, result.output
        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["status"]["matching"] == {"community-mc": "confirmed"}

    def test_missing_config_file(self, write_snapshot, epic_document, tmp_path):
        """Test that a missing configuration file exits 1."""
        result = runner.invoke(app, [
            "reconcile", write_snapshot("epic.json", epic_document), "--config", str(tmp_path / "nope.json"),
        ])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestVersionOption:
    """Test the --version option."""

    def test_version(self):
        """Test that the name and version are printed."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"{settings.app_name} {APP_VERSION}" in result.output


class TestMatchCommand:
    """Test the match command."""

    def test_match(self, write_snapshot, epic_document, community_document):
        """Test that the same patient exits 0."""
        result = runner.invoke(app, [
            "match",
            write_snapshot("epic.json", epic_document),
            write_snapshot("community.json", community_document),
        ])

        assert result.exit_code == 0, result.output
        assert "1.00" in result.output

    def test_no_match(self, write_snapshot, epic_document, community_document):
        """Test that a different patient exits 1."""
        community_document["demographics"].update(first_name="John", birth_date="1975-01-01")
        result = runner.invoke(app, [
            "match",
            write_snapshot("epic.json", epic_document),
            write_snapshot("community.json", community_document),
        ])

        assert result.exit_code == 1
        assert "no match" in result.output

    def test_threshold_option(self, write_snapshot, epic_document, community_document):
        """Test that --threshold changes the decision."""
        community_document["demographics"].update(first_name="John", birth_date="1975-01-01")
        result = runner.invoke(app, [
            "match",
            write_snapshot("epic.json", epic_document),
            write_snapshot("community.json", community_document),
            "--threshold", "0.3",
        ])

        assert result.exit_code == 0, result.output

    def test_missing_demographics(self, write_snapshot, epic_document, community_document):
        """Test that a snapshot without demographics exits 1."""
        del community_document["demographics"]
        result = runner.invoke(app, [
            "match",
            write_snapshot("epic.json", epic_document),
            write_snapshot("community.json", community_document),
        ])

        assert result.exit_code == 1
        assert "demographics" in result.output
