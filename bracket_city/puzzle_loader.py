"""Puzzle loading for Bracket City.

Puzzles are stored one per day as `<solutions_dir>/<YYYY-MM-DD>.json`,
in the record format served by the puzzle API. YAML files with the same
keys are accepted too.

Usage:
    loader = PuzzleLoader("bracket_city/inputs/solutions")
    puzzle = loader.get_puzzle("2025-05-27")
    for puzzle in loader.get_puzzles(["2025-05-26", "2025-05-27"]):
        ...
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import yaml

from bracket_city.parser import BracketStructureError, find_active_clues
from bracket_city.state import PuzzleData

logger = logging.getLogger(__name__)

DEFAULT_SOLUTIONS_DIR = Path(__file__).parent / "inputs" / "solutions"
SUFFIXES = (".json", ".yml", ".yaml")


class PuzzleLoadError(Exception):
    """Raised when a puzzle record is missing or unusable."""


def parse_puzzle(data: Dict, source: str = "<record>") -> PuzzleData:
    """Validate a raw puzzle record and build PuzzleData.

    The initial document is parsed once here so that malformed puzzles
    fail at load time rather than mid-run.
    """
    if not isinstance(data, dict):
        raise PuzzleLoadError(f"{source}: expected a mapping, got {type(data).__name__}")
    for key in ("initialPuzzle", "solutions"):
        if key not in data:
            raise PuzzleLoadError(f"{source}: missing required key '{key}'")
    if not isinstance(data["initialPuzzle"], str):
        raise PuzzleLoadError(f"{source}: 'initialPuzzle' must be text")
    if not isinstance(data["solutions"], dict):
        raise PuzzleLoadError(f"{source}: 'solutions' must be a mapping")
    for expression, solution in data["solutions"].items():
        if not isinstance(expression, str) or not isinstance(solution, str):
            raise PuzzleLoadError(f"{source}: solution for {expression!r} must be text, got {solution!r}")
        # Solutions are spliced into the document
        if "[" in solution or "]" in solution:
            raise PuzzleLoadError(f"{source}: solution for {expression!r} contains a bracket: {solution!r}")

    puzzle = PuzzleData.from_dict(data)
    try:
        active = find_active_clues(puzzle.initial_puzzle)
    except BracketStructureError as e:
        raise PuzzleLoadError(f"{source}: malformed puzzle text: {e}") from e

    missing = [clue.expression for clue in active if clue.expression not in puzzle.solutions]
    if missing:
        logger.warning(f"{source}: no solution for initial clue(s) {missing}")
    return puzzle


def load_puzzle_file(path: Path) -> PuzzleData:
    """Load a single puzzle record from a JSON or YAML file."""
    path = Path(path)
    if not path.exists():
        raise PuzzleLoadError(f"Puzzle file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise PuzzleLoadError(f"{path}: invalid JSON: {e}") from e
        else:
            data = yaml.safe_load(f)

    puzzle = parse_puzzle(data, source=str(path))
    if not puzzle.puzzle_date:
        # Records saved by `fetch` are named after their date
        puzzle = PuzzleData.from_dict({**puzzle.to_dict(), "puzzleDate": path.stem})
    return puzzle


class PuzzleLoader:
    """Load puzzles from a solutions directory."""

    def __init__(self, solutions_dir: Optional[Path] = None):
        self.solutions_dir = Path(solutions_dir) if solutions_dir else DEFAULT_SOLUTIONS_DIR
        self._cache: Dict[str, PuzzleData] = {}

    def _path_for(self, puzzle_date: str) -> Path:
        for suffix in SUFFIXES:
            candidate = self.solutions_dir / f"{puzzle_date}{suffix}"
            if candidate.exists():
                return candidate
        raise PuzzleLoadError(f"No puzzle for {puzzle_date} in {self.solutions_dir}")

    def available_dates(self) -> List[str]:
        """Dates with a stored puzzle, newest first."""
        if not self.solutions_dir.is_dir():
            logger.warning(f"Solutions directory not found: {self.solutions_dir}")
            return []
        dates = {p.stem for p in self.solutions_dir.iterdir() if p.suffix in SUFFIXES}
        return sorted(dates, reverse=True)

    def get_puzzle(self, puzzle_date: str) -> PuzzleData:
        if puzzle_date not in self._cache:
            self._cache[puzzle_date] = load_puzzle_file(self._path_for(puzzle_date))
            logger.debug(f"Loaded puzzle {puzzle_date}")
        return self._cache[puzzle_date]

    def get_puzzles(self, dates: Optional[Sequence[str]] = None) -> List[PuzzleData]:
        """Load the given dates, or every stored puzzle when dates is None."""
        if dates is None:
            dates = self.available_dates()
        return [self.get_puzzle(d) for d in dates]
