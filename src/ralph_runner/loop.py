"""Drive the agent iteration loop.

Each iteration spawns the agent once behind a pseudo-terminal, streams its
output as tool events, measures plan progress and new commits once it exits,
and persists the iteration time so a restarted run resumes where it stopped.

The subprocess listeners only enqueue messages; the controller thread is the
single consumer of that queue and the only writer of loop state. Pause and
abort are checked at iteration boundaries and at least every
`pause_poll_seconds` while an iteration runs.
"""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from .constants import DEFAULT_MAX_VISIBLE_EVENTS
from .events import make_event
from .git_utils import _git_commits_since
from .logging_utils import log_memory
from .models import LoopOptions, LoopState, LoopStatus, PersistedState, PlanProgress, PtyExit, ToolEvent
from .pause import is_pause_requested
from .plan import parse_plan
from .prompts import build_iteration_command
from .pty_process import PtyOptions, PtyProcess, spawn_pty
from .state import StateStore

SpawnFn = Callable[[list[str], PtyOptions], PtyProcess]
ParseFn = Callable[[Path], PlanProgress]
CommitCountFn = Callable[[Path, Optional[str]], int]

_DATA = "data"
_EXIT = "exit"


@dataclass
class LoopCallbacks:
    """Notifications delivered to the UI layer. Every callback is optional."""

    on_iteration_start: Optional[Callable[[int], None]] = None
    on_event: Optional[Callable[[ToolEvent], None]] = None
    on_iteration_complete: Optional[Callable[[int, int, int], None]] = None
    on_tasks_updated: Optional[Callable[[int, int], None]] = None
    on_commits_updated: Optional[Callable[[int], None]] = None
    on_pause: Optional[Callable[[], None]] = None
    on_resume: Optional[Callable[[], None]] = None
    on_complete: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[str], None]] = None
    on_state: Optional[Callable[[LoopState], None]] = None


class LoopController:
    """Run iterations until the plan is done, the run is aborted, or it fails.

    Args:
        options: Loop options (plan, agent command, limits, terminal size).
        state: Persisted run state; `iteration_times` is appended in place.
        callbacks: UI notifications.
        abort_event: Set from any thread to stop the loop.
        store: State store used to persist after each iteration.
        spawn: Factory starting the agent process.
        parse: Plan parser.
        count_commits: Returns the number of commits since the run's baseline.
        max_snapshot_events: Number of most recent events carried in snapshots.
    """

    def __init__(
        self,
        options: LoopOptions,
        state: PersistedState,
        callbacks: Optional[LoopCallbacks] = None,
        abort_event: Optional[threading.Event] = None,
        *,
        store: Optional[StateStore] = None,
        spawn: SpawnFn = spawn_pty,
        parse: ParseFn = parse_plan,
        count_commits: CommitCountFn = _git_commits_since,
        max_snapshot_events: int = DEFAULT_MAX_VISIBLE_EVENTS,
    ):
        self.options = options
        self.state = state
        self.callbacks = callbacks or LoopCallbacks()
        self.abort_event = abort_event or threading.Event()
        self.store = store or StateStore(options.project_dir)
        self._spawn = spawn
        self._parse = parse
        self._count_commits = count_commits
        self._max_snapshot_events = max_snapshot_events
        self._events: list[ToolEvent] = []
        self._consecutive_failures = 0
        self._session_iterations = 0
        self._last_pause_poll = 0.0
        self._loop_state = LoopState(iteration=state.iteration_count)

    @property
    def events(self) -> tuple[ToolEvent, ...]:
        return tuple(self._events)

    def snapshot(self) -> LoopState:
        return self._loop_state

    def run(self) -> LoopStatus:
        """Run the loop to a terminal status (complete, stopped or error)."""
        logger.info(
            "Loop starting: plan={} iterations_so_far={} command={}",
            self.options.plan_file,
            self.state.iteration_count,
            self.options.agent_command,
        )
        self._update(status=LoopStatus.STARTING)
        try:
            return self._run()
        except Exception as exc:
            logger.exception("Loop crashed")
            return self._fail(f"Unexpected error: {exc.__class__.__name__}: {exc}")

    def _run(self) -> LoopStatus:
        progress = self._measure()
        while True:
            if self.abort_event.is_set():
                return self._stop("abort requested")
            if progress.is_complete:
                return self._complete(progress)
            max_iterations = self.options.max_iterations
            if max_iterations and self._session_iterations >= max_iterations:
                return self._stop(f"reached max iterations ({max_iterations})")

            iteration = self.state.iteration_count + 1
            self._update(iteration=iteration)
            self._emit("on_iteration_start", iteration)

            if not self._wait_while_paused():
                return self._stop("abort requested while paused")
            self._update(status=LoopStatus.RUNNING)

            started = time.monotonic()
            try:
                exit_info = self._run_agent(iteration)
            except (OSError, ValueError) as exc:
                return self._fail(f"Iteration {iteration}: unable to start agent: {exc}")
            if exit_info is None:
                return self._stop(f"abort requested during iteration {iteration}")

            if exit_info.exit_code != 0:
                self._consecutive_failures += 1
                message = f"Iteration {iteration}: agent exited with code {exit_info.exit_code}"
                if exit_info.signal is not None:
                    message += f" (signal {exit_info.signal})"
                self._update(failures=self._loop_state.failures + 1, last_error=message)
                if self._consecutive_failures >= self.options.max_consecutive_failures:
                    return self._fail(
                        f"{message}; {self._consecutive_failures} consecutive failures, giving up"
                    )
                logger.warning(message)
                self._emit("on_error", message)
            else:
                self._consecutive_failures = 0

            progress = self._measure()
            duration_ms = int((time.monotonic() - started) * 1000)
            self.state.iteration_times.append(duration_ms)
            try:
                self.store.save(self.state)
            except OSError as exc:
                self.state.iteration_times.pop()
                return self._fail(f"Iteration {iteration}: unable to save state: {exc}")

            self._session_iterations += 1
            logger.info(
                "Iteration {} complete in {}ms: tasks {}/{} commits={}",
                iteration,
                duration_ms,
                progress.done,
                progress.total,
                self._loop_state.commits,
            )
            self._emit("on_iteration_complete", iteration, duration_ms, self._loop_state.commits)
            log_memory(f"After iteration {iteration}")

    def _run_agent(self, iteration: int) -> Optional[PtyExit]:
        """Run one agent process; return its exit, or None if aborted."""
        command = build_iteration_command(self.options)
        inbox: queue.Queue[tuple[str, Any]] = queue.Queue()
        proc = self._spawn(
            command,
            PtyOptions(
                columns=self.options.columns,
                rows=self.options.rows,
                cwd=self.options.project_dir,
                env=dict(self.options.env),
            ),
        )
        logger.info("Iteration {}: agent started pid={}", iteration, proc.pid)
        try:
            proc.on_data(lambda text: inbox.put((_DATA, text)))
            proc.on_exit(lambda info: inbox.put((_EXIT, info)))
            while True:
                try:
                    kind, payload = inbox.get(timeout=self.options.pause_poll_seconds)
                except queue.Empty:
                    kind, payload = None, None
                if kind == _DATA:
                    self._record_event(payload, iteration)
                elif kind == _EXIT:
                    return payload
                if self.abort_event.is_set():
                    logger.info("Iteration {}: abort requested, killing agent pid={}", iteration, proc.pid)
                    proc.kill()
                    return None
                self._poll_pause_intent()
        finally:
            try:
                proc.cleanup()
            except Exception:
                logger.exception("Iteration {}: agent cleanup failed", iteration)

    def _record_event(self, text: str, iteration: int) -> None:
        event = make_event(text, iteration)
        self._events.append(event)
        self._emit("on_event", event)
        self._update(events=tuple(self._events[-self._max_snapshot_events :]))

    def _measure(self) -> PlanProgress:
        progress = self._parse(self.options.plan_path)
        commits = self._count_commits(self.options.project_dir, self.state.initial_commit_hash)
        self._update(tasks_complete=progress.done, total_tasks=progress.total, commits=commits)
        self._emit("on_tasks_updated", progress.done, progress.total)
        self._emit("on_commits_updated", commits)
        return progress

    def _wait_while_paused(self) -> bool:
        """Block while the pause marker exists. Returns False if aborted meanwhile."""
        if not is_pause_requested(self.options.project_dir):
            if self._loop_state.pause_requested:
                self._update(pause_requested=False)
            return True

        logger.info("Paused")
        self._update(status=LoopStatus.PAUSED, pause_requested=True)
        self._emit("on_pause")
        while is_pause_requested(self.options.project_dir):
            if self.abort_event.wait(self.options.pause_poll_seconds):
                return False
        logger.info("Resumed")
        self._update(pause_requested=False)
        self._emit("on_resume")
        return True

    def _poll_pause_intent(self) -> None:
        now = time.monotonic()
        if now - self._last_pause_poll < self.options.pause_poll_seconds:
            return
        self._last_pause_poll = now
        requested = is_pause_requested(self.options.project_dir)
        if requested == self._loop_state.pause_requested:
            return
        if requested:
            logger.info("Pause requested; pausing once the current iteration finishes")
        self._update(pause_requested=requested)

    def _stop(self, reason: str) -> LoopStatus:
        logger.info("Loop stopped: {}", reason)
        self._update(status=LoopStatus.STOPPED)
        return LoopStatus.STOPPED

    def _complete(self, progress: PlanProgress) -> LoopStatus:
        logger.info("All {} tasks complete after {} iterations", progress.total, self.state.iteration_count)
        self._update(status=LoopStatus.COMPLETE)
        self._emit("on_complete")
        return LoopStatus.COMPLETE

    def _fail(self, message: str) -> LoopStatus:
        logger.error(message)
        self._update(status=LoopStatus.ERROR, last_error=message)
        self._emit("on_error", message)
        return LoopStatus.ERROR

    def _update(self, **changes: Any) -> None:
        self._loop_state = replace(self._loop_state, **changes)
        self._emit("on_state", self._loop_state)

    def _emit(self, name: str, *args: Any) -> None:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Loop callback {} failed", name)


def run_loop(
    options: LoopOptions,
    state: PersistedState,
    callbacks: Optional[LoopCallbacks] = None,
    abort_event: Optional[threading.Event] = None,
) -> LoopStatus:
    """Run the iteration loop with the default collaborators.

    Returns:
        The terminal `LoopStatus`.
    """
    return LoopController(options, state, callbacks, abort_event).run()
