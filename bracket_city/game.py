"""Run driver for Bracket City: one player solving one puzzle."""

import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bracket_city.engine import ActionOutcome, PuzzleEngine
from bracket_city.player import Action, Player
from bracket_city.scoring import DEFAULT_CONFIG, ScoreConfig, apply_completion_gate, calculate_score
from bracket_city.state import PuzzleData, PuzzleState
from shared import controllog as cl

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class SolveStats:
    """Action counters accumulated over a run."""
    total_clues: int
    guesses: int = 0
    correct_guesses: int = 0
    hints: int = 0
    reveals: int = 0
    steps_taken: int = 0
    completion_percentage: float = 0.0

    @property
    def wrong_guesses(self) -> int:
        return max(0, self.guesses - self.correct_guesses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guesses": self.guesses,
            "correctGuesses": self.correct_guesses,
            "totalClues": self.total_clues,
            "hints": self.hints,
            "reveals": self.reveals,
            "stepsTaken": self.steps_taken,
            "completionPercentage": self.completion_percentage,
        }


@dataclass(frozen=True)
class GuessAttempt:
    expression: str
    guess_text: str
    success: bool
    timestamp: float  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expression": self.expression,
            "guessText": self.guess_text,
            "success": self.success,
            "timestamp": self.timestamp,
        }


class BracketCityGame:
    """A single puzzle-solving run.

    The player picks one action per step; the engine applies it to the
    current PuzzleState. The run ends when no clues remain, when the
    player stops, or when the step budget runs out. Only a finished
    puzzle keeps its score.
    """

    # Version for tracking evaluation framework changes
    VERSION = "1.0.0"

    DEFAULT_MAX_STEPS = 50
    PROJECT_ID = "bracket_city"

    def __init__(
        self,
        puzzle: PuzzleData,
        player: Player,
        max_steps: int = DEFAULT_MAX_STEPS,
        quiet: bool = False,
        score_config: ScoreConfig = DEFAULT_CONFIG,
    ):
        self.puzzle = puzzle
        self.player = player
        self.max_steps = max_steps
        self.quiet = quiet
        self.score_config = score_config

        self.state = PuzzleState.initial(puzzle)
        self.history: List[PuzzleState] = [self.state]
        self.stats = SolveStats(total_clues=puzzle.total_clues)
        self.guess_log: List[GuessAttempt] = []

        self.usage = {"promptTokens": 0, "completionTokens": 0, "totalTokens": 0}
        self.total_cost: float = 0.0
        self.total_upstream_cost: float = 0.0

        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        # Generate unique game ID
        self.game_id = str(uuid.uuid4())[:8]

        # Controllog state
        self._controllog_initialized = False
        self._run_id: Optional[str] = None
        self._task_id: Optional[str] = None

    @property
    def model_name(self) -> str:
        return getattr(self.player, "model_name", "human")

    def _print(self, *args, **kwargs):
        """Print to console unless in quiet mode."""
        if not self.quiet:
            console.print(*args, **kwargs)

    def init_controllog(self, log_path: Path, run_id: str) -> None:
        """Initialize controllog SDK for unified analytics."""
        try:
            cl.init(project_id=self.PROJECT_ID, log_dir=log_path)
            self._controllog_initialized = True
            self._run_id = run_id
            self._task_id = f"puzzle:{self.puzzle.puzzle_date}:{self.game_id}"
            logger.info(f"Controllog initialized for game {self.game_id}")
        except OSError as e:
            logger.warning(f"Failed to initialize controllog: {e}")
            self._controllog_initialized = False

    def _emit_state_move(self, from_state: str, to_state: str, payload: Optional[Dict] = None) -> None:
        """Emit a state transition event via controllog."""
        if not self._controllog_initialized:
            return
        try:
            cl.state_move(
                task_id=self._task_id,
                from_=from_state,
                to=to_state,
                project_id=self.PROJECT_ID,
                agent_id=f"agent:{self.model_name}",
                run_id=self._run_id,
                payload=payload or {"game_id": self.game_id},
            )
        except Exception as e:
            logger.debug(f"Failed to emit state move: {e}")

    def _emit_model_events(self, metadata: Dict[str, Any], step: int) -> None:
        """Emit model_prompt and model_completion events via controllog."""
        if not self._controllog_initialized:
            return
        try:
            exchange_id = cl.new_id()
            model_id = metadata.get("model_id", self.model_name)
            payload = {"game_id": self.game_id, "step": step}

            cl.model_prompt(
                task_id=self._task_id,
                agent_id="agent:bracket_city:solver",
                run_id=self._run_id,
                project_id=self.PROJECT_ID,
                provider="openrouter",
                model=model_id,
                prompt_tokens=metadata.get("input_tokens", 0),
                request_text=metadata.get("request_text"),
                payload=payload,
                exchange_id=exchange_id,
            )
            cl.model_completion(
                task_id=self._task_id,
                agent_id="agent:bracket_city:solver",
                run_id=self._run_id,
                project_id=self.PROJECT_ID,
                provider="openrouter",
                model=model_id,
                completion_tokens=metadata.get("output_tokens", 0),
                wall_ms=int(metadata.get("latency_ms", 0)),
                cost_money=metadata.get("openrouter_cost"),
                upstream_cost_money=metadata.get("upstream_cost"),
                response_text=metadata.get("response_text"),
                payload=payload,
                exchange_id=exchange_id,
            )
        except Exception as e:
            logger.debug(f"Failed to emit model events: {e}")

    def _emit_puzzle_complete(self, result: Dict[str, Any], wall_ms: int) -> None:
        if not self._controllog_initialized:
            return
        try:
            cl.puzzle_complete(
                task_id=self._task_id,
                project_id=self.PROJECT_ID,
                puzzle_date=self.puzzle.puzzle_date,
                model=self.model_name,
                success=result["success"],
                score=result["score"],
                rank=result["rank"],
                guesses=self.stats.guesses,
                correct_guesses=self.stats.correct_guesses,
                hints=self.stats.hints,
                reveals=self.stats.reveals,
                steps_taken=self.stats.steps_taken,
                wall_ms=wall_ms,
                run_id=self._run_id,
                cost_money=self.total_cost,
                payload={"game_id": self.game_id, "version": self.VERSION},
            )
        except Exception as e:
            logger.debug(f"Failed to emit puzzle_complete: {e}")

    def _record_model_calls(self) -> None:
        for metadata in self.player.drain_call_metadata():
            self.usage["promptTokens"] += metadata.get("input_tokens", 0)
            self.usage["completionTokens"] += metadata.get("output_tokens", 0)
            self.usage["totalTokens"] += metadata.get("total_tokens", 0)
            self.total_cost += metadata.get("openrouter_cost", 0.0) or 0.0
            self.total_upstream_cost += metadata.get("upstream_cost", 0.0) or 0.0
            self._emit_model_events(metadata, self.stats.steps_taken)

    def apply_action(self, action: Action) -> ActionOutcome:
        """Apply one player action and update the run's bookkeeping."""
        solutions = self.puzzle.solutions

        if action.kind == "guess":
            outcome = PuzzleEngine.guess(action.clue, action.guess or "", self.state, solutions)
            self.stats.guesses += 1
            if outcome.success:
                self.stats.correct_guesses += 1
            self.guess_log.append(
                GuessAttempt(
                    expression=action.clue,
                    guess_text=action.guess or "",
                    success=outcome.success,
                    timestamp=time.time() * 1000,
                )
            )
        elif action.kind == "hint":
            outcome = PuzzleEngine.hint(action.clue, self.state, solutions)
            if outcome.success:
                self.stats.hints += 1
        elif action.kind == "reveal":
            outcome = PuzzleEngine.reveal(action.clue, self.state, solutions)
            if outcome.success:
                self.stats.reveals += 1
        else:
            raise ValueError(f"Unknown action kind: {action.kind}")

        if outcome.state is not self.state:
            self.state = outcome.state
            self.history.append(self.state)

        logger.debug(f"[{self.game_id}] {action.kind} [{action.clue}]: {outcome.message}")
        return outcome

    def _print_outcome(self, action: Action, outcome: ActionOutcome) -> None:
        label = f"{action.kind} [{action.clue}]" + (f" = {action.guess!r}" if action.guess else "")
        style = "green" if outcome.success else "red"
        self._print(f"[dim]{self.stats.steps_taken:>3}[/dim] [cyan]{escape(label)}[/cyan]")
        self._print(f"    [{style}]{escape(outcome.message)}[/{style}]")

    def score_details(self, completed: bool):
        details = calculate_score(
            peek_count=len(self.state.hinted_expressions),
            mega_peek_count=len(self.state.revealed_expressions),
            wrong_guess_count=self.stats.wrong_guesses,
            config=self.score_config,
        )
        return apply_completion_gate(details, completed, self.score_config)

    def play(self) -> Dict[str, Any]:
        """Run the puzzle to completion or budget and return the run result record.

        An exception from the player (such as a model API outage) is not a
        result: the task moves to FAILED and the exception propagates.
        """
        self.start_time = time.time()
        logger.info(
            f"Starting puzzle {self.puzzle.puzzle_date} with {self.model_name} "
            f"(game {self.game_id}, max {self.max_steps} steps)"
        )
        self._emit_state_move("NEW", "WIP", {
            "game_id": self.game_id,
            "puzzle_date": self.puzzle.puzzle_date,
            "model": self.model_name,
        })

        self._print(f"[bold]Bracket City {self.puzzle.puzzle_date}[/bold] | {self.model_name} | Game {self.game_id}")
        self._print(f"\n{escape(self.state.display_state)}\n")

        self.player.start(
            self.state.display_state,
            {
                "base_score": self.score_config.base_score,
                "peek_penalty": self.score_config.peek_penalty,
                "mega_peek_penalty": self.score_config.mega_peek_penalty,
                "wrong_guess_penalty": self.score_config.wrong_guess_penalty,
                "max_steps": self.max_steps,
            },
        )

        feedback: Optional[Dict[str, Any]] = None
        end_reason = "completed"
        while not self.state.is_complete:
            if self.stats.steps_taken >= self.max_steps:
                end_reason = "step_budget"
                logger.info(f"[{self.game_id}] Step budget of {self.max_steps} exhausted")
                break

            try:
                action = self.player.get_next_action(self.state.display_state, feedback)
            except Exception as e:
                self._record_model_calls()
                logger.error(f"[{self.game_id}] Player failed after {self.stats.steps_taken} steps: {e}")
                self._emit_state_move("WIP", "FAILED", {"game_id": self.game_id, "error": str(e)})
                raise
            self._record_model_calls()
            if action is None:
                end_reason = "player_stopped"
                logger.info(f"[{self.game_id}] Player stopped after {self.stats.steps_taken} steps")
                break

            self.stats.steps_taken += 1
            outcome = self.apply_action(action)
            self._print_outcome(action, outcome)
            feedback = outcome.to_dict()

        self.end_time = time.time()
        duration = self.end_time - self.start_time

        completed = self.state.is_complete
        self.stats.completion_percentage = self.state.completion_percentage
        details = self.score_details(completed)

        result = {
            "gameId": self.game_id,
            "model": self.model_name,
            "puzzleDate": self.puzzle.puzzle_date,
            "success": completed,
            "endReason": end_reason,
            "stats": self.stats.to_dict(),
            "usage": dict(self.usage),
            "score": details.final_score,
            "rank": details.rank,
            "scoreDetails": details.to_dict(),
            "guessLog": [g.to_dict() for g in sorted(self.guess_log, key=lambda g: g.timestamp)],
            "finalText": self.state.display_state,
            "duration": duration,
            "cost": self.total_cost,
            "upstreamCost": self.total_upstream_cost,
        }

        self._display_results(result)

        self._emit_state_move("WIP", "DONE" if completed else "INCOMPLETE", {
            "game_id": self.game_id,
            "score": details.final_score,
            "end_reason": end_reason,
            "duration_sec": duration,
        })
        self._emit_puzzle_complete(result, int(duration * 1000))

        logger.info(
            f"Puzzle {self.puzzle.puzzle_date} finished ({end_reason}). "
            f"Score: {details.final_score} ({details.rank})"
        )
        return result

    def _display_results(self, result: Dict[str, Any]) -> None:
        stats = self.stats
        table = Table(title="Final Results", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value")
        table.add_row("Status", "[green]Success[/green]" if result["success"] else "[yellow]Incomplete[/yellow]")
        table.add_row("Score", f"{result['score']}/{self.score_config.base_score}")
        table.add_row("Rank", result["rank"])
        table.add_row(
            "Completion",
            f"{stats.completion_percentage:.2f}% ({len(self.state.solved_expressions)}/{stats.total_clues})",
        )
        table.add_row("Guesses", f"{stats.guesses} ({stats.correct_guesses} correct)")
        table.add_row("Hints / Reveals", f"{stats.hints} / {stats.reveals}")
        table.add_row("Steps", str(stats.steps_taken))
        table.add_row("Duration", f"{result['duration']:.1f}s")
        table.add_row("Cost", f"${self.total_cost:.4f}")

        self._print()
        self._print(f"[bold]{escape(result['finalText'])}[/bold]")
        self._print(table)
