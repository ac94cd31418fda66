"""Tests for the command-line interface."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from cli.main import cli
from cma.client import AuthenticationError, NotFoundError, TransientError
from cma.models import Tag
from conftest import entry_link


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def site(repo, monkeypatch):
    for key in ("EXCLUDED_CONTENT_TYPES", "MAX_TRAVERSAL_DEPTH", "TAG_MATCH_MODE",
                "INCLUDE_ASSETS", "PRESERVE_PUBLISH_STATE", "REQUEST_CONCURRENCY"):
        monkeypatch.delenv(key, raising=False)
    repo.tags = [Tag(id="stl", name="Location: St. Louis")]
    repo.add_entry("LOC", content_type="location", fields={"tag": "Location: St. Louis"})
    repo.add_entry("HOME", content_type="pageHome", fields={
        "title": "Home", "location": entry_link("LOC"), "body": entry_link("CARD"),
    })
    repo.add_entry("CARD", fields={"title": "Card"}, tags=["stl"])
    return repo


class TestScanCommand:
    def test_scan_writes_inventory(self, runner, site, tmp_path) -> None:
        output = tmp_path / "scan.json"

        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["scan", "HOME", "-o", str(output), "-v"])

        assert result.exit_code == 0, result.output
        assert "Scan complete." in result.output
        assert "Location: St. Louis" in result.output
        data = json.loads(output.read_text())
        assert data["target_tag_ids"] == ["stl"]
        assert {row["id"] for row in data["entries"]} == {"HOME", "CARD", "LOC"}

    def test_scan_without_location(self, runner, repo) -> None:
        repo.add_entry("P")

        with patch("cli.main._build_client", return_value=repo):
            result = runner.invoke(cli, ["scan", "P"])

        assert result.exit_code == 0
        assert "No linked Location" in result.output

    def test_scan_of_missing_entry_reports_failure(self, runner, repo) -> None:
        with patch("cli.main._build_client", return_value=repo):
            result = runner.invoke(cli, ["scan", "does-not-exist"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "❌ Scan failed: Resource not found: does-not-exist" in result.output

    def test_scan_reraises_in_debug_mode(self, runner, repo) -> None:
        with patch("cli.main._build_client", return_value=repo):
            result = runner.invoke(cli, ["--debug", "scan", "does-not-exist"])

        assert isinstance(result.exception, NotFoundError)

    def test_scan_authentication_failure(self, runner) -> None:
        with patch("cli.main._build_client", side_effect=AuthenticationError("No management token")):
            result = runner.invoke(cli, ["scan", "HOME"])

        assert result.exit_code == 1
        assert "Scan failed" in result.output


class TestApplyCommand:
    def scan_to(self, runner, site, path) -> None:
        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["scan", "HOME", "-o", str(path)])
        assert result.exit_code == 0, result.output

    def test_apply_actionable_rows(self, runner, site, tmp_path) -> None:
        path = tmp_path / "scan.json"
        self.scan_to(runner, site, path)

        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["apply", str(path), "--yes"])

        assert result.exit_code == 0, result.output
        assert "Content: updated 1/1" in result.output
        assert "Tags were applied successfully" in result.output
        assert site.count("update_entry") == 1

    def test_apply_can_be_declined(self, runner, site, tmp_path) -> None:
        path = tmp_path / "scan.json"
        self.scan_to(runner, site, path)

        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["apply", str(path)], input="n\n")

        assert result.exit_code == 0
        assert site.count("update_entry") == 0

    def test_apply_only_unknown_ids(self, runner, site, tmp_path) -> None:
        path = tmp_path / "scan.json"
        self.scan_to(runner, site, path)

        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["apply", str(path), "--only", "NOPE", "-y"])

        assert result.exit_code == 1
        assert "Not in inventory" in result.output
        assert "Apply failed" in result.output


class TestTagsCommand:
    def test_resolves_names(self, runner, site) -> None:
        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["tags", "Location: St. Louis", "Location: Nowhere"])

        assert result.exit_code == 0
        assert "Location: St. Louis → stl" in result.output
        assert "Location: Nowhere → not found" in result.output

    def test_listing_failure_is_reported(self, runner, site) -> None:
        site.list_tags = MagicMock(side_effect=TransientError("Server error 503: unavailable"))

        with patch("cli.main._build_client", return_value=site):
            result = runner.invoke(cli, ["tags", "Location: St. Louis"])

        assert result.exit_code == 1
        assert "❌ Tag lookup failed: Server error 503" in result.output
