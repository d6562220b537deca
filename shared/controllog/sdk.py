"""Core controllog SDK: events and balanced postings written as JSONL.

Two files live under `<log_dir>/controllog/`:
- events.jsonl: one record per event (what happened)
- postings.jsonl: double-entry postings attached to events (what moved)

Postings for one event and account type always sum to zero.
"""

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

_lock = threading.Lock()
_project_id: Optional[str] = None
_log_dir: Optional[Path] = None


def init(project_id: str, log_dir: Path) -> None:
    """Set the default project and create the controllog directory."""
    global _project_id, _log_dir
    directory = Path(log_dir) / "controllog"
    directory.mkdir(parents=True, exist_ok=True)
    with _lock:
        _project_id = project_id
        _log_dir = directory


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_log_dir() -> Path:
    if _log_dir is None:
        raise RuntimeError("controllog.init() must be called before emitting events")
    return _log_dir


def _write_jsonl(path: Path, data: Dict[str, Any]) -> None:
    line = json.dumps(data, ensure_ascii=False, default=str)
    with _lock:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")


def event(
    kind: str,
    actor: Dict[str, Any],
    run_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    project_id: Optional[str] = None,
    source: str = "runtime",
    task_id: Optional[str] = None,
    event_id: Optional[str] = None,
    postings: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """Write an event and its postings. Returns the event id."""
    log_dir = _require_log_dir()
    event_id = event_id or new_id()
    record = {
        "event_id": event_id,
        "event_time": _now(),
        "kind": kind,
        "actor": actor,
        "project_id": project_id or _project_id,
        "run_id": run_id,
        "task_id": task_id,
        "source": source,
        "payload_json": payload or {},
    }
    _write_jsonl(log_dir / "events.jsonl", record)

    for posting in postings or []:
        post(event_id=event_id, **posting)

    return event_id


def post(
    event_id: str,
    account_type: str,
    account_id: str,
    unit: str,
    delta: float,
    dims: Optional[Dict[str, Any]] = None,
) -> None:
    """Write a single posting line for an event."""
    log_dir = _require_log_dir()
    _write_jsonl(
        log_dir / "postings.jsonl",
        {
            "posting_id": new_id(),
            "event_id": event_id,
            "account_type": account_type,
            "account_id": account_id,
            "unit": unit,
            "delta_numeric": delta,
            "dims_json": dims or {},
        },
    )
