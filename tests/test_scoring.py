"""Tests for Bracket City scoring and ranks."""

from bracket_city.scoring import (
    DEFAULT_CONFIG,
    ScoreConfig,
    apply_completion_gate,
    calculate_rank,
    calculate_score,
)


class TestCalculateScore:
    """Test cases for calculate_score."""

    def test_flawless_run(self):
        details = calculate_score(0, 0, 0)

        assert details.final_score == 100
        assert details.total_penalty == 0
        assert details.rank == "Puppet Master"
        assert details.next_rank_name is None
        assert details.points_to_next_rank == 0

    def test_two_hints(self):
        details = calculate_score(2, 0, 0)

        assert details.peek_penalty == 10
        assert details.final_score == 90
        assert details.rank == "Power Broker"
        assert details.next_rank_name == "Kingmaker"
        assert details.points_to_next_rank == 1

    def test_mixed_penalties(self):
        details = calculate_score(peek_count=1, mega_peek_count=2, wrong_guess_count=3)

        assert details.peek_penalty == 5
        assert details.mega_peek_penalty == 30
        assert details.wrong_guess_penalty == 6
        assert details.total_penalty == 41
        assert details.final_score == 59
        assert details.rank == "Chief of Police"
        assert details.next_rank_name == "Mayor"
        assert details.points_to_next_rank == 9

    def test_score_is_clamped_at_zero(self):
        details = calculate_score(0, 10, 0)

        assert details.total_penalty == 150
        assert details.final_score == 0
        assert details.rank == "Tourist"

    def test_to_dict_keys(self):
        data = calculate_score(1, 0, 0).to_dict()

        assert set(data) == {
            "baseScore", "peekPenalty", "megaPeekPenalty", "wrongGuessPenalty",
            "totalPenalty", "finalScore", "rank", "nextRankName", "pointsToNextRank",
        }
        assert data["finalScore"] == 95
        assert data["rank"] == "Kingmaker"


class TestCalculateRank:
    """Test cases for rank thresholds."""

    def test_band_boundaries(self):
        assert calculate_rank(10, 1, 0, 0) == "Tourist"
        assert calculate_rank(11, 1, 0, 0) == "Commuter"
        assert calculate_rank(30, 1, 0, 0) == "Resident"
        assert calculate_rank(31, 1, 0, 0) == "Council Member"
        assert calculate_rank(68, 1, 0, 0) == "Mayor"
        assert calculate_rank(78, 1, 0, 0) == "Mayor"
        assert calculate_rank(91, 1, 0, 0) == "Kingmaker"

    def test_top_rank_requires_no_penalised_actions(self):
        config = ScoreConfig(peek_penalty=0)
        details = calculate_score(1, 0, 0, config)

        assert details.final_score == 100
        assert details.rank == "Kingmaker"
        assert details.next_rank_name == "Puppet Master"
        assert details.points_to_next_rank == 0


class TestCompletionGate:
    """Test cases for apply_completion_gate."""

    def test_incomplete_puzzle_scores_zero(self):
        details = apply_completion_gate(calculate_score(0, 0, 0), completed=False)

        assert details.final_score == 0
        assert details.rank == "Tourist"
        assert details.next_rank_name == "Commuter"
        assert details.points_to_next_rank == 11

    def test_incomplete_puzzle_keeps_penalties(self):
        details = apply_completion_gate(calculate_score(1, 1, 1), completed=False)

        assert details.total_penalty == 22
        assert details.final_score == 0

    def test_completed_puzzle_unchanged(self):
        raw = calculate_score(2, 0, 0)

        assert apply_completion_gate(raw, completed=True, config=DEFAULT_CONFIG) == raw
