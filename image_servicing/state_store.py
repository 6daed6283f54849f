from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return "yaml"
    # Default to JSON for unknown extensions.
    return "json"


def _yaml():
    try:
        import yaml  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError("YAML state requested but PyYAML is not available. Use a .json state path.") from e
    return yaml


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) == "yaml":
        data = _yaml().safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")
    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) == "yaml":
        text = _yaml().safe_dump(state, sort_keys=False) + "\n"
    else:
        text = json.dumps(state, indent=2, sort_keys=True) + "\n"

    # Write-then-rename so an interrupted save never truncates the previous state.
    tmp = p.with_name(p.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(p)


def ensure_defaults(state: Dict[str, Any], *, partition: str) -> Dict[str, Any]:
    """Fill required keys; start a fresh batch if the state belongs to another partition."""

    state.setdefault("version", STATE_VERSION)
    state.setdefault("execution", {})
    state.setdefault("batch", {})

    if state["batch"].get("partition") not in (None, partition):
        logger.info(
            "State belongs to %s; starting a fresh batch for %s",
            state["batch"].get("partition"),
            partition,
        )
        state["batch"] = {}
        state["execution"]["completed_steps"] = []
    state["batch"]["partition"] = partition

    exe = state["execution"]
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("errors", [])
    exe.setdefault("mounts", {})

    return state


def mark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    exe = state.setdefault("execution", {})
    completed = exe.setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def is_step_completed(state: Dict[str, Any], step_id: str) -> bool:
    exe = state.get("execution") or {}
    completed = exe.get("completed_steps") or []
    return step_id in completed


def reset_batch(state: Dict[str, Any]) -> None:
    """Forget step progress and outputs so the next run starts a new batch."""

    partition = (state.get("batch") or {}).get("partition")
    state["batch"] = {"partition": partition} if partition else {}
    exe = state.setdefault("execution", {})
    exe["completed_steps"] = []
    exe["current_step"] = None
    exe.pop("batch_summary", None)
