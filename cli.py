"""Command-line interface for Bracket City Eval.

This is the unified CLI entry point:
- `bracket-eval bracket-city` - Run and score Bracket City puzzles
- `bracket-eval version` - Show version information
"""

import typer
from rich.console import Console

from bracket_city.cli_bracket_city import app as bracket_city_app

# Main application
app = typer.Typer(
    help="Bracket City Eval - nested-clue puzzle benchmark for language models",
    no_args_is_help=True,
)
console = Console()

app.add_typer(bracket_city_app, name="bracket-city", help="Run Bracket City puzzles for AI evaluation")


@app.callback()
def main():
    """Bracket City Eval - solve nested bracket puzzles with AI models.

    Examples:

        # Solve the latest stored puzzle with one model
        uv run bracket-eval bracket-city run --model gemini-flash

        # Evaluate all canonical models on every stored puzzle
        uv run bracket-eval bracket-city eval --all --threads 10

        # Aggregate saved results
        uv run bracket-eval bracket-city summary
    """
    pass


@app.command()
def version():
    """Show version information."""
    from bracket_city import __version__ as bracket_city_version
    from shared import __version__ as shared_version

    console.print("[bold]Bracket City Eval[/bold]")
    console.print(f"  bracket_city: {bracket_city_version}")
    console.print(f"  shared: {shared_version}")


if __name__ == "__main__":
    app()
