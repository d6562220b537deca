"""Tests for controllog SDK and builders."""

import json
import tempfile
from collections import defaultdict
from pathlib import Path
from unittest.mock import patch

import pytest

from shared import controllog as cl
from shared.controllog import sdk


def _written(mock_write, filename):
    return [c[0][1] for c in mock_write.call_args_list if c[0][0].name == filename]


def _assert_balanced(postings):
    totals = defaultdict(float)
    for posting in postings:
        totals[posting["account_type"]] += posting["delta_numeric"]
    for account_type, total in totals.items():
        assert total == pytest.approx(0), account_type


class TestControllogSDK:
    """Test cases for the core SDK."""

    def setup_method(self):
        """Setup for each test."""
        self.temp_dir = tempfile.mkdtemp()
        cl.init(project_id="test_project", log_dir=Path(self.temp_dir))

    def test_event_writes_jsonl_files(self):
        event_id = cl.event(
            kind="run_start",
            actor={"agent_id": "agent:bracket_city"},
            run_id="run-1",
            payload={"threads": 4},
            postings=[{"account_type": "truth.state", "account_id": "a", "unit": "task", "delta": 1}],
        )

        log_dir = Path(self.temp_dir) / "controllog"
        events = [json.loads(line) for line in (log_dir / "events.jsonl").read_text().splitlines()]
        postings = [json.loads(line) for line in (log_dir / "postings.jsonl").read_text().splitlines()]

        assert events[-1]["event_id"] == event_id
        assert events[-1]["kind"] == "run_start"
        assert events[-1]["project_id"] == "test_project"
        assert events[-1]["payload_json"] == {"threads": 4}
        assert postings[-1]["event_id"] == event_id
        assert postings[-1]["delta_numeric"] == 1

    def test_explicit_project_id_overrides_default(self):
        with patch("shared.controllog.sdk._write_jsonl") as mock_write:
            cl.event(kind="x", actor={}, project_id="other")

        assert _written(mock_write, "events.jsonl")[0]["project_id"] == "other"

    def test_event_before_init_raises(self):
        with patch.object(sdk, "_log_dir", None):
            with pytest.raises(RuntimeError):
                cl.event(kind="x", actor={})


class TestControllogBuilders:
    """Test cases for typed event builders."""

    def setup_method(self):
        """Setup for each test."""
        self.temp_dir = tempfile.mkdtemp()
        cl.init(project_id="bracket_city", log_dir=Path(self.temp_dir))

    def test_state_move(self):
        with patch("shared.controllog.sdk._write_jsonl") as mock_write:
            cl.state_move(
                task_id="puzzle:2025-05-27:abc",
                from_="NEW",
                to="WIP",
                project_id="bracket_city",
                agent_id="agent:test-model",
                run_id="run-1",
            )

        event_data = _written(mock_write, "events.jsonl")[0]
        assert event_data["kind"] == "state_move"
        assert event_data["payload_json"]["from"] == "NEW"
        assert event_data["payload_json"]["to"] == "WIP"

        postings = _written(mock_write, "postings.jsonl")
        assert {p["account_id"] for p in postings} == {"state:NEW", "state:WIP"}
        _assert_balanced(postings)

    def test_model_exchange_shares_exchange_id(self):
        with patch("shared.controllog.sdk._write_jsonl") as mock_write:
            common = dict(
                task_id="puzzle:t",
                agent_id="agent:bracket_city:solver",
                run_id="run-1",
                project_id="bracket_city",
                provider="openrouter",
                model="openai/gpt-4o",
                exchange_id="ex-1",
            )
            cl.model_prompt(prompt_tokens=120, request_text="Solve this", **common)
            cl.model_completion(
                completion_tokens=30,
                wall_ms=900,
                cost_money=0.002,
                upstream_cost_money=0.001,
                response_text="ACTION: hint",
                **common,
            )

        prompt_event, completion_event = _written(mock_write, "events.jsonl")
        assert prompt_event["payload_json"]["exchange_id"] == "ex-1"
        assert prompt_event["payload_json"]["request_text"] == "Solve this"
        assert completion_event["payload_json"]["exchange_id"] == "ex-1"
        assert completion_event["payload_json"]["cost_money"] == 0.002
        assert completion_event["payload_json"]["response_text"] == "ACTION: hint"

        postings = _written(mock_write, "postings.jsonl")
        assert {p["account_type"] for p in postings} == {"resource.tokens", "resource.time_ms", "resource.money"}
        _assert_balanced(postings)

    def test_model_prompt_without_text(self):
        with patch("shared.controllog.sdk._write_jsonl") as mock_write:
            cl.model_prompt(
                task_id="t",
                agent_id="a",
                run_id=None,
                project_id="bracket_city",
                provider="openrouter",
                model="m",
                prompt_tokens=10,
            )

        assert "request_text" not in _written(mock_write, "events.jsonl")[0]["payload_json"]

    def test_puzzle_complete(self):
        with patch("shared.controllog.sdk._write_jsonl") as mock_write:
            cl.puzzle_complete(
                task_id="puzzle:2025-05-27:abc",
                project_id="bracket_city",
                puzzle_date="2025-05-27",
                model="test-model",
                success=True,
                score=88,
                rank="Power Broker",
                guesses=5,
                correct_guesses=4,
                hints=0,
                reveals=0,
                steps_taken=5,
                wall_ms=12000,
                run_id="run-1",
                cost_money=0.01,
            )

        event_data = _written(mock_write, "events.jsonl")[0]
        payload = event_data["payload_json"]
        assert event_data["kind"] == "puzzle_complete"
        assert payload["score"] == 88
        assert payload["rank"] == "Power Broker"
        assert payload["cost_money"] == 0.01

        postings = _written(mock_write, "postings.jsonl")
        assert all(p["account_type"] == "value.utility" for p in postings)
        _assert_balanced(postings)
