"""Scoring and ranks for Bracket City runs.

Every run starts at 100 points. Hints ("peeks"), reveals ("mega peeks")
and wrong guesses subtract fixed penalties, and the final score maps to
a named rank. The top rank, Puppet Master, requires a flawless run: a
perfect score alone is not enough if any penalised action was taken.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ScoreConfig:
    """Penalty weights and rank thresholds."""
    peek_penalty: int = 5
    mega_peek_penalty: int = 15
    wrong_guess_penalty: int = 2
    base_score: int = 100
    # Ascending by threshold
    rank_thresholds: Tuple[Tuple[str, int], ...] = field(
        default=(
            ("Tourist", 0),
            ("Commuter", 11),
            ("Resident", 21),
            ("Council Member", 31),
            ("Chief of Police", 51),
            ("Mayor", 68),
            ("Power Broker", 79),
            ("Kingmaker", 91),
            ("Puppet Master", 100),
        )
    )

    @property
    def lowest_rank(self) -> str:
        return self.rank_thresholds[0][0]

    @property
    def top_rank(self) -> str:
        return self.rank_thresholds[-1][0]


DEFAULT_CONFIG = ScoreConfig()


@dataclass(frozen=True)
class ScoreDetails:
    """Score breakdown for one run."""
    base_score: int
    peek_penalty: int
    mega_peek_penalty: int
    wrong_guess_penalty: int
    total_penalty: int
    final_score: int
    rank: str
    next_rank_name: Optional[str]
    points_to_next_rank: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseScore": self.base_score,
            "peekPenalty": self.peek_penalty,
            "megaPeekPenalty": self.mega_peek_penalty,
            "wrongGuessPenalty": self.wrong_guess_penalty,
            "totalPenalty": self.total_penalty,
            "finalScore": self.final_score,
            "rank": self.rank,
            "nextRankName": self.next_rank_name,
            "pointsToNextRank": self.points_to_next_rank,
        }


def calculate_rank(
    final_score: float,
    peek_count: int,
    mega_peek_count: int,
    wrong_guess_count: int,
    config: ScoreConfig = DEFAULT_CONFIG,
) -> str:
    """Highest rank whose threshold does not exceed the score.

    The top rank is only awarded for a perfect score with no hints,
    reveals or wrong guesses; otherwise it is skipped in the lookup.
    """
    flawless = (
        final_score == config.base_score
        and peek_count == 0
        and mega_peek_count == 0
        and wrong_guess_count == 0
    )
    if flawless:
        return config.top_rank

    for name, threshold in reversed(config.rank_thresholds[:-1]):
        if final_score >= threshold:
            return name
    return config.lowest_rank


def _next_rank(rank: str, final_score: float, config: ScoreConfig) -> Tuple[Optional[str], int]:
    names: List[str] = [name for name, _ in config.rank_thresholds]
    index = names.index(rank)
    if index == len(names) - 1:
        return None, 0
    name, threshold = config.rank_thresholds[index + 1]
    return name, math.ceil(max(0, threshold - final_score))


def calculate_score(
    peek_count: int,
    mega_peek_count: int,
    wrong_guess_count: int,
    config: ScoreConfig = DEFAULT_CONFIG,
) -> ScoreDetails:
    """Score a run from its penalty counts.

    Args:
        peek_count: Distinct expressions hinted
        mega_peek_count: Distinct expressions revealed
        wrong_guess_count: Guesses that did not solve a clue

    Returns:
        ScoreDetails with the final score clamped to [0, base score]
    """
    peek_count = max(0, peek_count)
    mega_peek_count = max(0, mega_peek_count)
    wrong_guess_count = max(0, wrong_guess_count)

    peek_penalty = peek_count * config.peek_penalty
    mega_peek_penalty = mega_peek_count * config.mega_peek_penalty
    wrong_guess_penalty = wrong_guess_count * config.wrong_guess_penalty
    total_penalty = peek_penalty + mega_peek_penalty + wrong_guess_penalty

    final_score = min(config.base_score, max(0, config.base_score - total_penalty))
    rank = calculate_rank(final_score, peek_count, mega_peek_count, wrong_guess_count, config)
    next_rank_name, points_to_next_rank = _next_rank(rank, final_score, config)

    return ScoreDetails(
        base_score=config.base_score,
        peek_penalty=peek_penalty,
        mega_peek_penalty=mega_peek_penalty,
        wrong_guess_penalty=wrong_guess_penalty,
        total_penalty=total_penalty,
        final_score=final_score,
        rank=rank,
        next_rank_name=next_rank_name,
        points_to_next_rank=points_to_next_rank,
    )


def apply_completion_gate(
    details: ScoreDetails,
    completed: bool,
    config: ScoreConfig = DEFAULT_CONFIG,
) -> ScoreDetails:
    """Zero the score of an unfinished puzzle.

    Penalties are kept for reference; the final score becomes 0 and the
    rank the lowest one, whatever the penalties were.
    """
    if completed:
        return details
    rank = config.lowest_rank
    next_rank_name, points_to_next_rank = _next_rank(rank, 0, config)
    return replace(
        details,
        final_score=0,
        rank=rank,
        next_rank_name=next_rank_name,
        points_to_next_rank=points_to_next_rank,
    )
