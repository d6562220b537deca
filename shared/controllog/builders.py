"""Typed event builders on top of the controllog SDK.

Every builder emits one event with postings balanced per account type:
- resource.tokens: project -> model
- resource.time_ms / resource.money: project -> agent
- truth.state: from-state -> to-state
- value.utility: task -> agent
"""

from typing import Any, Dict, Optional

from .sdk import event


def _pair(account_type: str, debit: str, credit: str, unit: str, amount: float, dims: Dict[str, Any]):
    return [
        {"account_type": account_type, "account_id": debit, "unit": unit, "delta": -amount, "dims": dims},
        {"account_type": account_type, "account_id": credit, "unit": unit, "delta": amount, "dims": dims},
    ]


def state_move(
    task_id: str,
    from_: str,
    to: str,
    project_id: str,
    agent_id: str,
    run_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> str:
    """Record a task moving between workflow states (e.g. NEW -> WIP)."""
    dims = {"task_id": task_id}
    return event(
        kind="state_move",
        actor={"agent_id": agent_id},
        run_id=run_id,
        payload={"from": from_, "to": to, **(payload or {})},
        project_id=project_id,
        task_id=task_id,
        postings=_pair("truth.state", f"state:{from_}", f"state:{to}", "task", 1, dims),
    )


def model_prompt(
    task_id: str,
    agent_id: str,
    run_id: Optional[str],
    project_id: str,
    provider: str,
    model: str,
    prompt_tokens: int,
    request_text: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    exchange_id: Optional[str] = None,
) -> str:
    """Record the prompt side of a model exchange."""
    body = {"provider": provider, "model": model, "prompt_tokens": prompt_tokens, **(payload or {})}
    if exchange_id:
        body["exchange_id"] = exchange_id
    if request_text is not None:
        body["request_text"] = request_text
    dims = {"model": model, "phase": "prompt"}
    return event(
        kind="model_prompt",
        actor={"agent_id": agent_id, "model": model},
        run_id=run_id,
        payload=body,
        project_id=project_id,
        task_id=task_id,
        postings=_pair("resource.tokens", f"project:{project_id}", f"model:{model}", "tokens", prompt_tokens, dims),
    )


def model_completion(
    task_id: str,
    agent_id: str,
    run_id: Optional[str],
    project_id: str,
    provider: str,
    model: str,
    completion_tokens: int,
    wall_ms: int,
    cost_money: Optional[float] = None,
    upstream_cost_money: Optional[float] = None,
    response_text: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    exchange_id: Optional[str] = None,
) -> str:
    """Record the completion side of a model exchange with time and cost."""
    body = {
        "provider": provider,
        "model": model,
        "completion_tokens": completion_tokens,
        "wall_ms": wall_ms,
        **(payload or {}),
    }
    if exchange_id:
        body["exchange_id"] = exchange_id
    if cost_money is not None:
        body["cost_money"] = cost_money
    if upstream_cost_money is not None:
        body["upstream_cost_money"] = upstream_cost_money
    if response_text is not None:
        body["response_text"] = response_text

    dims = {"model": model, "phase": "completion"}
    postings = _pair("resource.tokens", f"project:{project_id}", f"model:{model}", "tokens", completion_tokens, dims)
    postings += _pair("resource.time_ms", f"project:{project_id}", agent_id, "ms", wall_ms, dims)
    if cost_money:
        postings += _pair("resource.money", f"project:{project_id}", f"vendor:{provider}", "usd", cost_money, dims)

    return event(
        kind="model_completion",
        actor={"agent_id": agent_id, "model": model},
        run_id=run_id,
        payload=body,
        project_id=project_id,
        task_id=task_id,
        postings=postings,
    )


def puzzle_complete(
    task_id: str,
    project_id: str,
    puzzle_date: str,
    model: str,
    success: bool,
    score: int,
    rank: str,
    guesses: int,
    correct_guesses: int,
    hints: int,
    reveals: int,
    steps_taken: int,
    wall_ms: int,
    run_id: Optional[str] = None,
    cost_money: Optional[float] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> str:
    """Record the outcome of one puzzle-solving run."""
    body = {
        "puzzle_date": puzzle_date,
        "model": model,
        "success": success,
        "score": score,
        "rank": rank,
        "guesses": guesses,
        "correct_guesses": correct_guesses,
        "hints": hints,
        "reveals": reveals,
        "steps_taken": steps_taken,
        "wall_ms": wall_ms,
        **(payload or {}),
    }
    if cost_money is not None:
        body["cost_money"] = cost_money

    agent_id = f"agent:{model}"
    return event(
        kind="puzzle_complete",
        actor={"agent_id": agent_id, "model": model},
        run_id=run_id,
        payload=body,
        project_id=project_id,
        task_id=task_id,
        postings=_pair("value.utility", task_id, agent_id, "points", score, {"puzzle_date": puzzle_date}),
    )
