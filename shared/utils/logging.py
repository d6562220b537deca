"""Logging setup shared by all games.

File logs are JSON lines so runs can be grepped and loaded into
analytics tools; the console gets rich formatting when verbose.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from rich.logging import RichHandler


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(log_dir: Path, verbose: bool = False) -> logging.Logger:
    """Configure the root logger for a run.

    Always writes JSON lines to `<log_dir>/run_<timestamp>.jsonl` at DEBUG
    level. Console output (via rich) is only attached when verbose.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    file_handler = logging.FileHandler(log_dir / f"run_{timestamp}.jsonl")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    root.addHandler(file_handler)

    if verbose:
        console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setLevel(logging.DEBUG)
        root.addHandler(console_handler)

    # requests/urllib3 are noisy at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root
