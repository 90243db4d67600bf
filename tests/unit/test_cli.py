"""Unit tests for the diagnostic CLI."""

import json

import pytest
from click.testing import CliRunner

from unitlink.cli import EXIT_AMBIGUOUS, main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestMatchingCommands:
    """Tests for normalize, tokens, score and pick."""

    def test_normalize(self, runner):
        result = runner.invoke(main, ["normalize", "Órgão Julgador"])

        assert result.exit_code == 0
        assert result.output == "orgao julgador\n"

    def test_tokens(self, runner):
        result = runner.invoke(main, ["tokens", "1ª Vara do Trabalho de São Paulo"])

        assert result.exit_code == 0
        assert result.output.split() == ["sao", "paulo"]

    def test_score_json(self, runner):
        result = runner.invoke(main, ["score", "Secretário", "Secretario", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["exact_match"] is True
        assert data["combined_score"] == 1.0
        assert data["equivalent"] is True

    def test_score_text(self, runner):
        result = runner.invoke(main, ["score", "Analista", "Analista Judiciário"])

        assert result.exit_code == 0
        assert "Combined score:" in result.output
        assert "True" in result.output

    def test_pick(self, runner):
        result = runner.invoke(
            main,
            ["pick", "1ª VT Campinas", "Vara do Trabalho de Sorocaba", "1ª Vara do Trabalho de Campinas"],
        )

        assert result.exit_code == 0
        assert result.output.strip().endswith("1ª Vara do Trabalho de Campinas")

    def test_pick_no_match(self, runner):
        result = runner.invoke(main, ["pick", "Campinas", "Sorocaba"])

        assert result.exit_code == 1

    def test_pick_ambiguous(self, runner):
        result = runner.invoke(
            main,
            [
                "pick",
                "Vara do Trabalho de Campinas",
                "1ª Vara do Trabalho de Campinas",
                "2ª Vara do Trabalho de Campinas",
            ],
        )

        assert result.exit_code == EXIT_AMBIGUOUS


class TestLocatorsCommand:
    """Tests for the locators command."""

    def test_lists_default_targets(self, runner):
        result = runner.invoke(main, ["locators"])

        assert result.exit_code == 0
        assert "addButton" in result.output
        assert "expands via panelHeader" in result.output

    def test_single_kind(self, runner):
        result = runner.invoke(main, ["locators", "--kind", "saveButton"])

        assert result.exit_code == 0
        assert "saveButton" in result.output
        assert "unitSelector" not in result.output

    def test_unknown_kind(self, runner):
        result = runner.invoke(main, ["locators", "--kind", "missing"])

        assert result.exit_code == 1

    def test_invalid_file(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"targets": [{"kind": "x", "tiers": {}}]}', encoding="utf-8")

        result = runner.invoke(main, ["locators", "--file", str(path)])

        assert result.exit_code == 1
