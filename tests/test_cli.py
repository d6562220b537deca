"""Tests for the bracket-city CLI commands."""

import csv
import json
from unittest.mock import Mock, patch

import requests
from typer.testing import CliRunner

from bracket_city.cli_bracket_city import _run_single_puzzle, app, summarize_results
from bracket_city.player import DEFAULT_PROMPT_FILE
from bracket_city.state import PuzzleData


runner = CliRunner()

PUZZLE = {
    "initialPuzzle": "The [cat] sat on the [mat].",
    "solutions": {"cat": "dog", "mat": "rug"},
}


def write_result(results_dir, model, puzzle_date, score, completion, success):
    results_dir.mkdir(parents=True, exist_ok=True)
    data = {
        "timestamp": "2025-06-01T00:00:00+00:00",
        "model": {"name": model, "provider": "openai"},
        "puzzle": dict(PUZZLE, puzzleDate=puzzle_date),
        "result": {
            "success": success,
            "score": score,
            "rank": "Tourist",
            "stats": {"completionPercentage": completion},
            "timeToSolve": 1.5,
        },
    }
    (results_dir / f"{model}-{puzzle_date}.json").write_text(json.dumps(data))


class TestSummary:
    """Test cases for result aggregation."""

    def setup_method(self):
        self.rows_input = [
            ("model-a", "2025-01-01", 100, 100.0, True),
            ("model-a", "2025-01-02", 50, 60.0, False),
            ("model-b", "2025-01-01", 90, 100.0, True),
        ]

    def test_summarize_results(self, tmp_path):
        for row in self.rows_input:
            write_result(tmp_path, *row)

        rows = summarize_results(tmp_path)

        assert [r["model"] for r in rows] == ["model-b", "model-a"]
        assert rows[1] == {
            "model": "model-a",
            "totalPuzzles": 2,
            "averageScore": 75.0,
            "averageCompletionPercentage": 80.0,
            "successRate": 50,
        }

    def test_summary_command_writes_csv(self, tmp_path):
        results_dir = tmp_path / "results"
        for row in self.rows_input:
            write_result(results_dir, *row)
        output = tmp_path / "summary.csv"

        result = runner.invoke(app, ["summary", "--results-dir", str(results_dir), "--output", str(output)])

        assert result.exit_code == 0, result.output
        with open(output, newline="") as f:
            lines = list(csv.reader(f))
        assert lines[0] == ["Model", "Total Puzzles", "Average Score", "Average Completion %", "Average Success Rate"]
        assert lines[1][0] == "model-b"
        assert lines[2] == ["model-a", "2", "75.0", "80.0", "50"]

    def test_summary_without_results_fails(self, tmp_path):
        result = runner.invoke(app, ["summary", "--results-dir", str(tmp_path / "missing")])

        assert result.exit_code == 1


class TestRunAndEval:
    """Test cases for argument validation and scheduling."""

    def test_run_requires_model_or_interactive(self):
        result = runner.invoke(app, ["run"])

        assert result.exit_code == 1
        assert "--model or --interactive" in result.output

    @patch.dict("os.environ", {}, clear=True)
    def test_run_without_api_key_fails(self):
        result = runner.invoke(app, ["run", "--model", "gpt-4o"])

        assert result.exit_code == 1
        assert "OPENROUTER_API_KEY" in result.output

    def test_eval_requires_models(self):
        result = runner.invoke(app, ["eval"])

        assert result.exit_code == 1

    def test_eval_rejects_unknown_model(self):
        result = runner.invoke(app, ["eval", "--model", "not-a-model", "--dry-run"])

        assert result.exit_code == 1
        assert "Invalid model name" in result.output

    @patch("bracket_city.cli_bracket_city.setup_logging")
    def test_eval_dry_run_skips_existing_results(self, _mock_logging, tmp_path):
        solutions_dir = tmp_path / "solutions"
        solutions_dir.mkdir()
        for puzzle_date in ("2025-01-01", "2025-01-02"):
            (solutions_dir / f"{puzzle_date}.json").write_text(json.dumps(PUZZLE))
        results_dir = tmp_path / "results"
        write_result(results_dir, "gpt-4o", "2025-01-01", 100, 100.0, True)

        result = runner.invoke(app, [
            "eval", "--model", "gpt-4o", "--dry-run",
            "--solutions-dir", str(solutions_dir),
            "--results-dir", str(results_dir),
        ])

        assert result.exit_code == 0, result.output
        assert "Skipping gpt-4o for 2025-01-01" in result.output
        assert "Runs scheduled: 1 (skipped 1)" in result.output

    @patch("bracket_city.game.cl")
    @patch("bracket_city.player.OpenRouterAdapter")
    def test_api_outage_writes_no_result(self, mock_adapter_cls, _mock_cl, tmp_path):
        mock_adapter_cls.return_value.call_chat_with_metadata.side_effect = requests.ConnectionError("down")
        results_dir = tmp_path / "results"
        results_dir.mkdir()

        result, error = _run_single_puzzle(
            "gpt-4o", PuzzleData.from_dict(dict(PUZZLE, puzzleDate="2025-01-01")),
            10, DEFAULT_PROMPT_FILE, results_dir, "run-1",
        )

        assert result is None
        assert "down" in error
        assert list(results_dir.iterdir()) == []


class TestPuzzleCommands:
    """Test cases for list-puzzles, prompt and fetch."""

    def test_list_puzzles(self, tmp_path):
        (tmp_path / "2025-03-01.json").write_text(json.dumps(PUZZLE))

        result = runner.invoke(app, ["list-puzzles", "--solutions-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "2025-03-01" in result.output

    def test_prompt_shows_puzzle(self, tmp_path):
        (tmp_path / "2025-03-01.json").write_text(json.dumps(PUZZLE))

        result = runner.invoke(app, ["prompt", "--solutions-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "The [cat] sat on the [mat]." in result.output
        assert "{{" not in result.output

    @patch("bracket_city.cli_bracket_city.requests.get")
    def test_fetch_saves_available_days(self, mock_get, tmp_path):
        found = Mock(ok=True, status_code=200, json=Mock(return_value=dict(PUZZLE, puzzleDate="2025-04-01")))
        missing = Mock(ok=False, status_code=404)
        mock_get.side_effect = [found, missing]

        result = runner.invoke(app, [
            "fetch", "--start", "2025-04-01", "--end", "2025-04-02",
            "--solutions-dir", str(tmp_path), "--base-url", "https://puzzles.test/",
        ])

        assert result.exit_code == 0, result.output
        mock_get.assert_any_call("https://puzzles.test/2025-04-01", timeout=30)
        assert (tmp_path / "2025-04-01.json").exists()
        assert not (tmp_path / "2025-04-02.json").exists()

    @patch("bracket_city.cli_bracket_city.requests.get")
    def test_fetch_skips_saved_days(self, mock_get, tmp_path):
        (tmp_path / "2025-04-01.json").write_text(json.dumps(PUZZLE))

        result = runner.invoke(app, [
            "fetch", "--start", "2025-04-01", "--end", "2025-04-01", "--solutions-dir", str(tmp_path),
        ])

        assert result.exit_code == 0
        mock_get.assert_not_called()
