#!/usr/bin/env python3
"""Provide the `ralph` CLI entrypoint and its subcommands.

`ralph [run]` drives the agent against a plan checklist until every task is
checked off. `ralph pause`, `ralph resume` and `ralph status` control and
inspect a run from another terminal.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .app import start_app
from .config import RunnerConfig, load_runner_config
from .constants import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_OK, LOG_FILE, LOG_LEVELS
from .git_utils import _git_head_sha, _git_is_repo
from .lock import SingletonLock
from .logging_utils import configure_logging
from .loop import run_loop
from .models import LoopOptions, LoopStatus, PersistedState
from .pause import clear_pause, is_pause_requested, request_pause, toggle_pause
from .plan import parse_plan
from .prompt import confirm
from .state import StateStore
from .timefmt import calculate_eta, format_duration, format_eta
from .utils import _pid_is_running


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def _add_project_dir(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory (default: current directory)",
    )


def _build_run_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralph",
        description="Ralph - run a coding agent in a loop until the plan checklist is done",
    )
    _add_project_dir(parser)
    parser.add_argument(
        "-p",
        "--plan",
        type=str,
        default=None,
        help="Path to the plan file, relative to the project directory (default: plan.md)",
    )
    parser.add_argument(
        "-m",
        "--model",
        type=str,
        default=None,
        help="Model to use (provider/model format)",
    )
    parser.add_argument(
        "--prompt",
        type=str,
        default=None,
        help="Custom prompt template (use {plan} as placeholder)",
    )
    parser.add_argument(
        "--agent-command",
        type=str,
        default=None,
        help="Agent command template; {model}, {prompt} and {plan} are substituted",
    )
    parser.add_argument(
        "--max-iterations",
        type=_positive_int,
        default=None,
        help="Stop after this many iterations in this session (default: unlimited)",
    )
    parser.add_argument(
        "-r",
        "--reset",
        action="store_true",
        help="Reset state and start fresh",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Answer yes to every confirmation prompt",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Minimum log level printed to stderr (default: WARNING)",
    )
    return parser


def _build_pause_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralph pause",
        description="Ralph - pause the running loop after its current iteration",
    )
    _add_project_dir(parser)
    parser.add_argument(
        "--toggle",
        action="store_true",
        help="Resume instead if a pause is already requested",
    )
    return parser


def _build_resume_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralph resume",
        description="Ralph - resume a paused loop",
    )
    _add_project_dir(parser)
    return parser


def _build_status_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralph status",
        description="Ralph - show the state of the run in a project directory",
    )
    _add_project_dir(parser)
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON",
    )
    return parser


def _resolve_options(project_dir: Path, args: argparse.Namespace, config: RunnerConfig) -> LoopOptions:
    """Merge CLI flags over config file values."""
    return LoopOptions(
        project_dir=project_dir,
        plan_file=args.plan or config.plan,
        model=args.model or config.model,
        prompt=args.prompt if args.prompt is not None else config.prompt,
        agent_command=args.agent_command or config.agent_command,
        max_iterations=args.max_iterations or config.max_iterations,
        max_consecutive_failures=config.max_consecutive_failures,
        pause_poll_seconds=config.pause_poll_seconds,
        columns=config.columns,
        rows=config.rows,
        env=dict(config.env),
    )


def _select_state(
    store: StateStore,
    plan_file: str,
    *,
    reset: bool,
    assume_yes: bool,
) -> tuple[Optional[PersistedState], bool]:
    """Decide whether to resume the persisted run.

    Returns:
        A tuple of `(state_to_resume, proceed)`. `state_to_resume` is None when
        a fresh state is needed; `proceed` is False when the user declined to
        reset for a different plan.
    """
    existing = None if reset else store.load()
    if existing is None:
        return None, True

    if existing.plan_file == plan_file:
        if confirm("Continue previous run?", default=True, assume_yes=assume_yes):
            logger.info("Resuming run with {} iterations", existing.iteration_count)
            return existing, True
        return None, True

    logger.info("Persisted run used plan {}; requested {}", existing.plan_file, plan_file)
    if confirm("Reset state for new plan?", default=False, assume_yes=assume_yes):
        return None, True
    return None, False


def _run_command(args: argparse.Namespace) -> int:
    project_dir = args.project_dir.resolve()
    config, config_err = load_runner_config(project_dir)
    options = _resolve_options(project_dir, args, config)
    log_level = args.log_level or config.log_level
    configure_logging(log_level)
    if config_err:
        logger.warning("Ignoring invalid config, using defaults: {}", config_err)

    lock = SingletonLock(project_dir)
    if not lock.acquire():
        sys.stderr.write(f"Another ralph instance is running (pid {lock.owner() or '?'})\n")
        return EXIT_FAILURE
    try:
        configure_logging(log_level, project_dir / LOG_FILE, reset=bool(args.reset))
        return _run_locked(options, reset=bool(args.reset), assume_yes=bool(args.yes))
    finally:
        lock.release()


def _run_locked(options: LoopOptions, *, reset: bool, assume_yes: bool) -> int:
    store = StateStore(options.project_dir)
    state, proceed = _select_state(store, options.plan_file, reset=reset, assume_yes=assume_yes)
    if not proceed:
        sys.stdout.write("Exiting without changes.\n")
        return EXIT_OK

    if state is None:
        if not _git_is_repo(options.project_dir):
            logger.warning("{} is not a git repository; commits will not be counted", options.project_dir)
        state = PersistedState.fresh(options.plan_file, _git_head_sha(options.project_dir))
        try:
            store.save(state)
        except OSError as exc:
            logger.error("Unable to write state file {}: {}", store.path, exc)
            return EXIT_FAILURE

    abort_event = threading.Event()
    interrupted = threading.Event()
    handle = start_app(options, state, on_quit=abort_event.set)

    def _on_sigint(signum: int, frame: Any) -> None:
        if interrupted.is_set():
            raise KeyboardInterrupt
        interrupted.set()
        handle.console.print("[yellow]Stopping... (press Ctrl+C again to force)[/yellow]")
        handle.quit()

    previous_handler = signal.signal(signal.SIGINT, _on_sigint)
    try:
        status = run_loop(options, state, handle.callbacks(), abort_event)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        handle.close()

    if status == LoopStatus.COMPLETE:
        store.clear()
        return EXIT_OK
    if status == LoopStatus.ERROR:
        return EXIT_FAILURE
    if interrupted.is_set():
        return EXIT_INTERRUPTED
    return EXIT_OK


def _pause_command(project_dir: Path, *, toggle: bool = False) -> int:
    project_dir = project_dir.resolve()
    if toggle:
        paused = toggle_pause(project_dir)
    else:
        request_pause(project_dir)
        paused = True
    if paused:
        sys.stdout.write("Pause requested; the loop pauses before its next iteration.\n")
    else:
        sys.stdout.write("Pause cleared; the loop continues.\n")
    return EXIT_OK


def _resume_command(project_dir: Path) -> int:
    if clear_pause(project_dir.resolve()):
        sys.stdout.write("Pause cleared; the loop continues.\n")
    else:
        sys.stdout.write("No pause was requested.\n")
    return EXIT_OK


def _status_command(project_dir: Path, *, as_json: bool = False) -> int:
    project_dir = project_dir.resolve()
    config, config_err = load_runner_config(project_dir)
    lock = SingletonLock(project_dir)
    owner = lock.owner()
    running = owner is not None and _pid_is_running(owner)
    state = StateStore(project_dir).load()

    plan_file = state.plan_file if state is not None else config.plan
    progress = parse_plan(LoopOptions(project_dir=project_dir, plan_file=plan_file).plan_path)
    times = state.iteration_times if state is not None else []
    eta = calculate_eta(times, progress.remaining)

    payload = {
        "project_dir": str(project_dir),
        "running": running,
        "pid": owner if running else None,
        "pause_requested": is_pause_requested(project_dir),
        "plan_file": plan_file,
        "tasks_complete": progress.done,
        "total_tasks": progress.total,
        "iterations": len(times),
        "elapsed_ms": state.elapsed_ms() if state is not None else None,
        "eta_ms": eta,
        "initial_commit": state.initial_commit_hash if state is not None else None,
        "errors": [config_err] if config_err else [],
    }
    if as_json:
        sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")
        return EXIT_OK

    sys.stdout.write(f"Project: {project_dir}\n")
    if config_err:
        sys.stdout.write(f"Config error: {config_err}\n")
    if running:
        sys.stdout.write(f"Run:     active (pid {owner})\n")
    else:
        sys.stdout.write("Run:     not running\n")
    if payload["pause_requested"]:
        sys.stdout.write("Pause:   requested\n")
    sys.stdout.write(f"Plan:    {plan_file} ({progress.done}/{progress.total} tasks)\n")
    if state is None:
        sys.stdout.write("State:   none\n")
        return EXIT_OK
    sys.stdout.write(
        f"State:   {len(times)} iterations, {format_duration(state.elapsed_ms())} elapsed, "
        f"ETA {format_eta(eta)}\n"
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> None:
    """Run the `ralph` CLI.

    Args:
        argv: Optional argument list (excluding the executable name). When omitted,
            uses `sys.argv[1:]`.

    Raises:
        SystemExit: Raised to return the process exit code.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv:
        if argv[0] == "pause":
            args = _build_pause_parser().parse_args(argv[1:])
            raise SystemExit(_pause_command(args.project_dir, toggle=bool(args.toggle)))
        if argv[0] == "resume":
            args = _build_resume_parser().parse_args(argv[1:])
            raise SystemExit(_resume_command(args.project_dir))
        if argv[0] == "status":
            args = _build_status_parser().parse_args(argv[1:])
            raise SystemExit(_status_command(args.project_dir, as_json=bool(args.json)))
        if argv[0] == "run":
            argv = argv[1:]

    args = _build_run_parser().parse_args(argv)
    try:
        raise SystemExit(_run_command(args))
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted\n")
        raise SystemExit(EXIT_INTERRUPTED) from None


if __name__ == "__main__":
    main()
