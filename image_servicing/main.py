from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from typing import Any, Callable, Dict, Optional

import requests

from .config import ServicingContext, load_config, merge_overrides
from .errors import BatchCancelled, ServicingError
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import run_pipeline
from .services import BatchServices
from .state_store import ensure_defaults, is_step_completed, load_state, reset_batch, save_state
from .steps import ApplyStep, AuditCacheStep, FetchStep, ReportStep, ResolveStep

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "servicing.yaml"
DEFAULT_STATE_PATH = "/var/lib/image-servicing/state.json"


def build_steps(services: BatchServices):
    # Audit needs the fresh resolution; fetch follows the audit; apply last.
    return [
        ResolveStep(services),
        AuditCacheStep(services),
        FetchStep(services),
        ApplyStep(services),
        ReportStep(services),
    ]


def run(
    *,
    config_path: str = DEFAULT_CONFIG_PATH,
    state_path: str = DEFAULT_STATE_PATH,
    log_path: str = DEFAULT_LOG_PATH,
    mount_dir: Optional[str] = None,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    verbose: bool = False,
    overrides: Optional[Dict[str, Any]] = None,
    session: Optional[requests.Session] = None,
    services: Optional[BatchServices] = None,
    cancel: Optional[Callable[[], bool]] = None,
) -> Dict[str, Any]:
    """Run one resolve -> audit -> fetch -> apply batch, persisting state for resume."""

    actual_log_path = configure_logging(log_path=log_path, verbose=verbose)

    cfg = merge_overrides(load_config(config_path), overrides or {})
    ctx = ServicingContext.from_config(cfg)

    state = load_state(state_path)
    if start_at is None and is_step_completed(state, ReportStep.step_id):
        # Last batch finished; this run is a new batch, not a resume.
        reset_batch(state)
    state = ensure_defaults(state, partition=ctx.partition_key)

    exe = state["execution"]
    exe.setdefault("paths", {})["log_path_requested"] = log_path
    exe["paths"]["log_path_actual"] = actual_log_path
    mount = mount_dir or cfg.mount_dir
    if mount:
        exe["mounts"]["mount_dir"] = mount

    if services is None:
        services = BatchServices.create(cfg, ctx, session=session, cancel=cancel)

    try:
        result = run_pipeline(
            state=state,
            steps=build_steps(services),
            start_at=start_at,
            stop_after=stop_after,
            force=force,
            checkpoint=lambda s: save_state(state_path, s),
        )
        state = result.state
        exe.setdefault("summary", {})["ran_steps"] = result.ran_steps
        exe["summary"]["skipped_steps"] = result.skipped_steps
        return state
    except BatchCancelled as e:
        logger.warning("%s", e)
        exe.setdefault("errors", []).append({"step": exe.get("current_step"), "error": str(e)})
        raise
    except Exception as e:
        logger.exception("Servicing batch failed")
        exe.setdefault("errors", []).append({"step": exe.get("current_step"), "error": str(e)})
        raise
    finally:
        save_state(state_path, state)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="image-servicing")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Servicing config (YAML)")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to batch state (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to servicing log")
    p.add_argument("--mount", default=None, help="Mounted image root (overrides paths.mount_dir)")
    p.add_argument("--backend", choices=["curated", "enterprise"], default=None)
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 30_fetch)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id (e.g. 30_fetch to only prepare the cache)")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG (command output, skipped files)")
    p.add_argument("--dry-run", action="store_true", help="Log downloads, prunes and applies without doing them")
    p.add_argument("--include-optional", action="store_true", default=None)
    p.add_argument("--include-dynamic", action="store_true", default=None)

    args = p.parse_args(argv)

    overrides = {
        "catalog.backend": args.backend,
        "toggles.include_optional": args.include_optional,
        "toggles.include_dynamic": args.include_dynamic,
        "dry_run": True if args.dry_run else None,
    }

    stop = threading.Event()

    def _on_sigint(signum, frame) -> None:
        if stop.is_set():
            raise KeyboardInterrupt
        stop.set()
        logger.warning("Interrupt received; stopping before the next artifact (again to abort now)")

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        state = run(
            config_path=args.config,
            state_path=args.state,
            log_path=args.log,
            mount_dir=args.mount,
            start_at=args.start_at,
            stop_after=args.stop_after,
            force=bool(args.force),
            verbose=bool(args.verbose),
            overrides=overrides,
            cancel=stop.is_set,
        )
    except BatchCancelled:
        return 130
    except ServicingError:
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    print(json.dumps((state.get("execution") or {}).get("batch_summary") or {}, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
