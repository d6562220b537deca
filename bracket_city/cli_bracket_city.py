"""CLI subcommand for Bracket City puzzles."""

import csv
import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests
import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from bracket_city.game import BracketCityGame
from bracket_city.player import DEFAULT_PROMPT_FILE, AIPlayer, HumanPlayer
from bracket_city.prompt_manager import PromptManager
from bracket_city.puzzle_loader import DEFAULT_SOLUTIONS_DIR, PuzzleLoader, PuzzleLoadError
from bracket_city.scoring import DEFAULT_CONFIG
from bracket_city.state import PuzzleData, PuzzleState
from shared import controllog as cl
from shared.adapters.openrouter_adapter import (
    _load_canonical_models,
    _load_model_mappings,
    flatten_mappings,
)
from shared.utils.logging import setup_logging

app = typer.Typer(help="Run Bracket City puzzles for AI evaluation")
console = Console()

PUZZLE_API_URL = "https://8huadblp0h.execute-api.us-east-2.amazonaws.com/puzzles/"

SUMMARY_COLUMNS = [
    ("model", "Model"),
    ("totalPuzzles", "Total Puzzles"),
    ("averageScore", "Average Score"),
    ("averageCompletionPercentage", "Average Completion %"),
    ("successRate", "Average Success Rate"),
]


def _available_models() -> Dict[str, str]:
    return flatten_mappings(_load_model_mappings())


def _require_api_key() -> None:
    if not os.getenv("OPENROUTER_API_KEY"):
        console.print("[red]Error: OPENROUTER_API_KEY environment variable not set[/red]")
        console.print("[yellow]Try `source .env` if running locally[/yellow]")
        raise typer.Exit(1)


def _validate_models(models: List[str]) -> None:
    available = _available_models()
    invalid = [m for m in models if m not in available]
    if invalid:
        console.print(f"[red]Error: Invalid model name(s): {', '.join(invalid)}[/red]")
        console.print("\n[yellow]Use 'bracket-eval bracket-city list-models' for the full list[/yellow]")
        raise typer.Exit(1)


def _provider(model_name: str) -> str:
    model_id = _available_models().get(model_name, model_name)
    return model_id.split("/")[0] if "/" in model_id else "unknown"


def _result_path(results_dir: Path, model_name: str, puzzle_date: str) -> Path:
    return results_dir / f"{model_name}-{puzzle_date}.json"


def _write_result(path: Path, model_name: str, puzzle: PuzzleData, result: Dict[str, Any], time_to_solve: float) -> None:
    data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "model": {"name": model_name, "provider": _provider(model_name)},
        "puzzle": puzzle.to_dict(),
        "result": {**result, "timeToSolve": time_to_solve},
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


@app.command()
def run(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to run"),
    puzzle_date: Optional[str] = typer.Option(None, "--date", "-d", help="Puzzle date (default: latest stored)"),
    interactive: bool = typer.Option(False, "--interactive", help="Solve the puzzle yourself"),
    max_steps: int = typer.Option(BracketCityGame.DEFAULT_MAX_STEPS, "--max-steps", help="Maximum actions before the run is stopped"),
    solutions_dir: Path = typer.Option(DEFAULT_SOLUTIONS_DIR, "--solutions-dir", help="Directory of puzzle records"),
    prompt_file: str = typer.Option(DEFAULT_PROMPT_FILE, "--prompt-file", help="Solver prompt file"),
    results_dir: Optional[Path] = typer.Option(None, "--results-dir", help="Also save the run result here"),
    log_path: Path = typer.Option(Path("logs/bracket_city"), "--log-path", help="Directory for log files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print logs to terminal for debugging"),
):
    """Solve a single puzzle with one model (or interactively)."""
    if interactive == (model is not None):
        console.print("[red]Error: specify exactly one of --model or --interactive[/red]")
        raise typer.Exit(1)

    if model:
        _require_api_key()
        _validate_models([model])

    setup_logging(log_path, verbose)
    logger = logging.getLogger(__name__)

    loader = PuzzleLoader(solutions_dir)
    if puzzle_date is None:
        dates = loader.available_dates()
        if not dates:
            console.print(f"[red]Error: no puzzles found in {solutions_dir}[/red]")
            raise typer.Exit(1)
        puzzle_date = dates[0]

    try:
        puzzle = loader.get_puzzle(puzzle_date)
    except PuzzleLoadError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    player = AIPlayer(model, prompt_file=prompt_file) if model else HumanPlayer(console)
    game = BracketCityGame(puzzle, player, max_steps=max_steps)

    run_id = f"{datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S')}_bracket_city_{game.model_name}"
    game.init_controllog(Path("logs"), run_id)

    try:
        result = game.play()
    except Exception as e:
        logger.error(f"Run {run_id} failed: {e}")
        console.print(f"[red]Error: run failed, no result recorded: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    logger.info(f"Run {run_id} finished with score {result['score']}")

    if results_dir is not None and model:
        path = _result_path(results_dir, model, puzzle.puzzle_date)
        _write_result(path, model, puzzle, result, result["duration"])
        console.print(f"[green]Result saved to {path}[/green]")


def _run_single_puzzle(
    model_name: str,
    puzzle: PuzzleData,
    max_steps: int,
    prompt_file: str,
    results_dir: Path,
    run_id: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Run one (model, puzzle) pair and save its result.

    Returns: (result_dict, error_message)
    """
    try:
        player = AIPlayer(model_name, prompt_file=prompt_file)
        game = BracketCityGame(puzzle, player, max_steps=max_steps, quiet=True)
        game.init_controllog(Path("logs"), run_id)

        result = game.play()
        _write_result(
            _result_path(results_dir, model_name, puzzle.puzzle_date),
            model_name,
            puzzle,
            result,
            result["duration"],
        )
        return result, None

    except Exception as e:
        logging.getLogger(__name__).error(f"Run {model_name} on {puzzle.puzzle_date} failed: {e}")
        return None, str(e)


@app.command("eval")
def run_eval(
    models: Optional[List[str]] = typer.Option(None, "--model", "-m", help="Models to evaluate (can specify multiple)"),
    all_canonical: bool = typer.Option(False, "--all", "-a", help="Evaluate all canonical models"),
    dates: Optional[List[str]] = typer.Option(None, "--date", "-d", help="Puzzle dates (default: every stored puzzle)"),
    threads: int = typer.Option(10, "--threads", "-t", help="Number of runs executed at once"),
    max_steps: int = typer.Option(BracketCityGame.DEFAULT_MAX_STEPS, "--max-steps", help="Maximum actions per run"),
    solutions_dir: Path = typer.Option(DEFAULT_SOLUTIONS_DIR, "--solutions-dir", help="Directory of puzzle records"),
    results_dir: Path = typer.Option(Path("results"), "--results-dir", "-o", help="Directory for run result files"),
    prompt_file: str = typer.Option(DEFAULT_PROMPT_FILE, "--prompt-file", help="Solver prompt file"),
    log_path: Path = typer.Option(Path("logs/bracket_city/eval"), "--log-path", help="Directory for log files"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the schedule without running anything"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Run every model on every selected puzzle.

    Pairs that already have a result file are skipped, so an interrupted
    evaluation can be resumed by running the same command again. Failed
    runs are reported and not retried.
    """
    if all_canonical:
        eval_models = _load_canonical_models()
        if not eval_models:
            console.print("[red]Error: No canonical models found[/red]")
            raise typer.Exit(1)
    elif models:
        eval_models = list(models)
    else:
        console.print("[red]Error: Specify --model or --all[/red]")
        raise typer.Exit(1)

    _validate_models(eval_models)
    if not dry_run:
        _require_api_key()

    setup_logging(log_path, verbose)
    logger = logging.getLogger(__name__)

    loader = PuzzleLoader(solutions_dir)
    try:
        puzzles = loader.get_puzzles(dates or None)
    except PuzzleLoadError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    schedule: List[Tuple[str, PuzzleData]] = []
    skipped = 0
    for puzzle in puzzles:
        for model_name in eval_models:
            if _result_path(results_dir, model_name, puzzle.puzzle_date).exists():
                console.print(f"[dim]Skipping {model_name} for {puzzle.puzzle_date} (already exists)[/dim]")
                skipped += 1
                continue
            schedule.append((model_name, puzzle))

    console.print("[bold blue]Bracket City Evaluation[/bold blue]")
    console.print(f"Models: {len(eval_models)} | Puzzles: {len(puzzles)} | Threads: {threads}")
    console.print(f"Runs scheduled: {len(schedule)} (skipped {skipped})")

    if dry_run:
        schedule_table = Table(title="Run Schedule")
        schedule_table.add_column("#", style="dim", justify="right")
        schedule_table.add_column("Model", style="cyan")
        schedule_table.add_column("Puzzle", style="magenta")
        for i, (model_name, puzzle) in enumerate(schedule, 1):
            schedule_table.add_row(str(i), model_name, puzzle.puzzle_date)
        console.print(schedule_table)
        console.print("[dim]Remove --dry-run to start evaluation.[/dim]")
        return

    if not schedule:
        console.print("[green]Nothing to run.[/green]")
        return

    run_id = f"eval_{datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S')}"
    try:
        cl.init(project_id=BracketCityGame.PROJECT_ID, log_dir=Path("logs"))
        cl.event(
            kind="run_start",
            actor={"agent_id": "agent:bracket_city"},
            run_id=run_id,
            payload={
                "version": BracketCityGame.VERSION,
                "threads": threads,
                "max_steps": max_steps,
                "total_runs": len(schedule),
                "models": eval_models,
            },
            project_id=BracketCityGame.PROJECT_ID,
            source="runtime",
        )
    except OSError as e:
        logger.warning(f"Controllog unavailable: {e}")

    results: List[Dict[str, Any]] = []
    failed: List[Dict[str, Any]] = []
    total_cost = 0.0
    lock = threading.Lock()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Solving puzzles...", total=len(schedule))

        with ThreadPoolExecutor(max_workers=threads) as executor:
            futures = {
                executor.submit(
                    _run_single_puzzle, model_name, puzzle, max_steps, prompt_file, results_dir, run_id
                ): (model_name, puzzle)
                for model_name, puzzle in schedule
            }

            completed = 0
            for future in as_completed(futures):
                model_name, puzzle = futures[future]
                result, error = future.result()
                completed += 1

                if result:
                    with lock:
                        results.append(result)
                        total_cost += result.get("cost", 0.0)
                    status = "solved" if result["success"] else "incomplete"
                    progress.console.print(
                        f"[green]✅ {completed}/{len(schedule)} | {model_name} | {puzzle.puzzle_date} | "
                        f"{status} | {result['score']} ({result['rank']}) | ${result.get('cost', 0.0):.4f}[/green]"
                    )
                else:
                    with lock:
                        failed.append({"model": model_name, "puzzle_date": puzzle.puzzle_date, "error": error})
                    progress.console.print(
                        f"[red]❌ {completed}/{len(schedule)} | {model_name} | {puzzle.puzzle_date} | FAILED: {escape(error)}[/red]"
                    )

                progress.advance(task)

    console.print("\n[bold]Evaluation Complete![/bold]")
    console.print(f"Runs: {len(results)} succeeded, {len(failed)} failed | Total cost: ${total_cost:.2f}")
    if failed:
        console.print(f"[yellow]⚠️ {len(failed)} runs failed; rerun the same command to retry them[/yellow]")


def summarize_results(results_dir: Path) -> List[Dict[str, Any]]:
    """Group result files by model and average their scores.

    Returns rows sorted by average score, highest first.
    """
    per_model: Dict[str, Dict[str, List]] = {}
    for path in sorted(Path(results_dir).glob("*.json")):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        model_name = data["model"]["name"]
        result = data["result"]
        entry = per_model.setdefault(model_name, {"scores": [], "completions": [], "successes": []})
        entry["scores"].append(result["score"])
        entry["completions"].append(result["stats"]["completionPercentage"])
        entry["successes"].append(bool(result["success"]))

    rows = []
    for model_name, entry in per_model.items():
        count = len(entry["scores"])
        rows.append({
            "model": model_name,
            "totalPuzzles": count,
            "averageScore": round(sum(entry["scores"]) / count, 2),
            "averageCompletionPercentage": round(sum(entry["completions"]) / count, 2),
            "successRate": round(sum(entry["successes"]) / count * 100),
        })

    rows.sort(key=lambda r: r["averageScore"], reverse=True)
    return rows


@app.command()
def summary(
    results_dir: Path = typer.Option(Path("results"), "--results-dir", help="Directory of run result files"),
    output: Path = typer.Option(Path("results-summary.csv"), "--output", "-o", help="CSV file to write"),
):
    """Aggregate run results into a per-model summary CSV."""
    if not results_dir.is_dir():
        console.print(f"[red]Error: results directory not found: {results_dir}[/red]")
        raise typer.Exit(1)

    rows = summarize_results(results_dir)
    if not rows:
        console.print(f"[yellow]No result files in {results_dir}[/yellow]")
        raise typer.Exit(1)

    with open(output, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow([header for _, header in SUMMARY_COLUMNS])
        for row in rows:
            writer.writerow([row[key] for key, _ in SUMMARY_COLUMNS])

    table = Table(title="Bracket City Results Summary")
    for key, header in SUMMARY_COLUMNS:
        table.add_column(header, style="cyan" if key == "model" else None, justify="left" if key == "model" else "right")
    for row in rows:
        table.add_row(
            row["model"],
            str(row["totalPuzzles"]),
            f"{row['averageScore']:.2f}",
            f"{row['averageCompletionPercentage']:.2f}",
            f"{row['successRate']}%",
        )
    console.print(table)
    console.print(f"\n[green]📊 Summary saved to: {output}[/green]")


@app.command()
def fetch(
    start: str = typer.Option("2025-01-01", "--start", help="First date to fetch (inclusive)"),
    end: Optional[str] = typer.Option(None, "--end", help="Last date to fetch (inclusive, default: today)"),
    solutions_dir: Path = typer.Option(DEFAULT_SOLUTIONS_DIR, "--solutions-dir", help="Directory to save puzzle records"),
    base_url: str = typer.Option(PUZZLE_API_URL, "--base-url", help="Puzzle API base URL"),
):
    """Download puzzle records for a date range."""
    try:
        first = date.fromisoformat(start)
        last = date.fromisoformat(end) if end else date.today()
    except ValueError as e:
        console.print(f"[red]Error: invalid date: {e}[/red]")
        raise typer.Exit(1)

    if solutions_dir.exists() and not solutions_dir.is_dir():
        console.print(f"[red]Error: {solutions_dir} exists but is not a directory[/red]")
        raise typer.Exit(1)
    solutions_dir.mkdir(parents=True, exist_ok=True)

    saved = 0
    day = first
    while day <= last:
        stamp = day.isoformat()
        out_path = solutions_dir / f"{stamp}.json"
        day += timedelta(days=1)

        if out_path.exists():
            console.print(f"[dim]Skip {stamp}: already saved[/dim]")
            continue

        try:
            response = requests.get(base_url + stamp, timeout=30)
        except requests.RequestException as e:
            console.print(f"[red]Error {stamp}: {e}[/red]")
            continue
        if not response.ok:
            console.print(f"[yellow]Skip {stamp}: HTTP {response.status_code}[/yellow]")
            continue

        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(response.json(), f, indent=2, ensure_ascii=False)
        saved += 1
        console.print(f"[green]Saved {stamp}[/green]")

    console.print(f"\n✨ Saved {saved} new puzzle(s) to {solutions_dir}")


@app.command()
def list_models():
    """List available AI models."""
    model_mappings = _available_models()
    canonical = set(_load_canonical_models())

    table = Table(title="Available AI Models")
    table.add_column("CLI Name", style="cyan", min_width=15)
    table.add_column("OpenRouter Model ID", style="magenta", min_width=30)
    table.add_column("Canonical", style="green", justify="center")

    for model_name in sorted(model_mappings):
        table.add_row(model_name, model_mappings[model_name], "✓" if model_name in canonical else "")

    console.print(table)
    console.print(f"\n✨ Total: {len(model_mappings)} models available")
    console.print("\n💡 Usage: [bold]bracket-eval bracket-city run --model [model][/bold]")


@app.command()
def list_puzzles(
    solutions_dir: Path = typer.Option(DEFAULT_SOLUTIONS_DIR, "--solutions-dir", help="Directory of puzzle records"),
):
    """List stored puzzles."""
    loader = PuzzleLoader(solutions_dir)
    table = Table(title=f"Puzzles in {solutions_dir}")
    table.add_column("Date", style="cyan")
    table.add_column("Clues", justify="right")
    table.add_column("Initially Active", justify="right")

    for puzzle_date in loader.available_dates():
        try:
            puzzle = loader.get_puzzle(puzzle_date)
        except PuzzleLoadError as e:
            table.add_row(puzzle_date, "[red]error[/red]", str(e))
            continue
        active = len(PuzzleState.initial(puzzle).active_clues())
        table.add_row(puzzle_date, str(puzzle.total_clues), str(active))

    console.print(table)


@app.command()
def prompt(
    puzzle_date: Optional[str] = typer.Option(None, "--date", "-d", help="Puzzle date (default: latest stored)"),
    solutions_dir: Path = typer.Option(DEFAULT_SOLUTIONS_DIR, "--solutions-dir", help="Directory of puzzle records"),
    prompt_file: str = typer.Option(DEFAULT_PROMPT_FILE, "--prompt-file", help="Solver prompt file"),
    max_steps: int = typer.Option(BracketCityGame.DEFAULT_MAX_STEPS, "--max-steps"),
):
    """Show the exact opening messages sent to the solver model."""
    loader = PuzzleLoader(solutions_dir)
    puzzle_date = puzzle_date or next(iter(loader.available_dates()), None)
    if puzzle_date is None:
        console.print(f"[red]Error: no puzzles found in {solutions_dir}[/red]")
        raise typer.Exit(1)

    try:
        puzzle = loader.get_puzzle(puzzle_date)
        system_prompt = PromptManager().load_prompt(
            prompt_file,
            {
                "base_score": DEFAULT_CONFIG.base_score,
                "peek_penalty": DEFAULT_CONFIG.peek_penalty,
                "mega_peek_penalty": DEFAULT_CONFIG.mega_peek_penalty,
                "wrong_guess_penalty": DEFAULT_CONFIG.wrong_guess_penalty,
                "max_steps": max_steps,
            },
        )
    except (PuzzleLoadError, FileNotFoundError) as e:
        console.print(f"[red]Error generating prompt: {e}[/red]")
        raise typer.Exit(1)

    console.print("[bold cyan]--- system ---[/bold cyan]")
    console.print(system_prompt, markup=False)
    console.print("[bold cyan]--- user ---[/bold cyan]")
    console.print(f"Solve the following puzzle:\n---\n{puzzle.initial_puzzle}", markup=False)
