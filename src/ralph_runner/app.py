"""Console reporter for a running loop.

`start_app` prints a run header and returns an `AppHandle`. The handle turns
loop callbacks into rich console lines and prints a summary table on close.
"""

from __future__ import annotations

from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .constants import DEFAULT_MAX_VISIBLE_EVENTS
from .events import strip_ansi
from .loop import LoopCallbacks
from .models import LoopOptions, LoopState, LoopStatus, PersistedState, ToolEvent
from .timefmt import calculate_eta, format_duration, format_eta
from .utils import _now_ms

_CATEGORY_STYLES = {
    "read": "blue",
    "write": "green",
    "edit": "green",
    "bash": "magenta",
    "search": "cyan",
    "list": "cyan",
    "fetch": "cyan",
    "task": "yellow",
    "todo": "yellow",
    "thinking": "dim italic",
    "output": "dim",
}

_STATUS_STYLES = {
    LoopStatus.STARTING: "dim",
    LoopStatus.RUNNING: "yellow",
    LoopStatus.PAUSED: "yellow",
    LoopStatus.COMPLETE: "green",
    LoopStatus.ERROR: "red",
    LoopStatus.STOPPED: "yellow",
}

_EVENT_LINE_LIMIT = 160


def _progress_bar(done: int, total: int, width: int = 20) -> str:
    if total <= 0:
        return f"{'░' * width} 0/0"
    filled = min(width, round(width * done / total))
    return f"{'█' * filled}{'░' * (width - filled)} {done}/{total}"


def _event_line(event: ToolEvent) -> Optional[Text]:
    lines = [line for line in strip_ansi(event.text).splitlines() if line.strip()]
    if not lines:
        return None
    text = lines[0].strip()
    if len(text) > _EVENT_LINE_LIMIT:
        text = text[: _EVENT_LINE_LIMIT - 3] + "..."
    if len(lines) > 1:
        text += f" (+{len(lines) - 1} lines)"
    style = _CATEGORY_STYLES.get(event.category, "dim")
    return Text.assemble((f"{event.category:>8} ", style), text)


class AppHandle:
    """Presentation state for one run, owned by the caller of `start_app`."""

    def __init__(
        self,
        options: LoopOptions,
        persisted_state: PersistedState,
        on_quit: Optional[Callable[[], None]] = None,
        *,
        console: Optional[Console] = None,
        max_events: int = DEFAULT_MAX_VISIBLE_EVENTS,
    ):
        self.options = options
        self.console = console or Console()
        self.max_events = max_events
        self._on_quit = on_quit
        self._start_time = persisted_state.start_time
        self._iteration_times: list[int] = list(persisted_state.iteration_times)
        self._state = LoopState(iteration=persisted_state.iteration_count)
        self._events_shown = 0
        self._last_progress: Optional[tuple[int, int]] = None
        self._closed = False

    @property
    def state(self) -> LoopState:
        return self._state

    def set_state(self, state: LoopState) -> None:
        self._state = state

    def eta_ms(self) -> Optional[float]:
        remaining = max(self._state.total_tasks - self._state.tasks_complete, 0)
        return calculate_eta(self._iteration_times, remaining)

    def quit(self) -> None:
        """Ask the owner to stop the run."""
        if self._on_quit is not None:
            self._on_quit()

    def callbacks(self) -> LoopCallbacks:
        return LoopCallbacks(
            on_iteration_start=self._on_iteration_start,
            on_event=self._on_event,
            on_iteration_complete=self._on_iteration_complete,
            on_tasks_updated=self._on_tasks_updated,
            on_pause=self._on_pause,
            on_resume=self._on_resume,
            on_complete=self._on_complete,
            on_error=self._on_error,
            on_state=self.set_state,
        )

    def close(self, elapsed_ms: Optional[int] = None) -> None:
        """Print the run summary once."""
        if self._closed:
            return
        self._closed = True

        if elapsed_ms is None:
            elapsed_ms = max(_now_ms() - self._start_time, 0)
        state = self._state
        table = Table(title="Ralph Summary", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Status", Text(state.status.value, style=_STATUS_STYLES.get(state.status, "")))
        table.add_row("Plan", self.options.plan_file)
        table.add_row("Iterations", str(len(self._iteration_times)))
        table.add_row("Tasks", _progress_bar(state.tasks_complete, state.total_tasks))
        table.add_row("Commits", str(state.commits))
        table.add_row("Elapsed", format_duration(elapsed_ms))
        if self._iteration_times:
            average = sum(self._iteration_times) / len(self._iteration_times)
            table.add_row("Avg iteration", format_duration(average))
        if state.failures:
            table.add_row("Failed iterations", str(state.failures))
        if state.last_error and state.status == LoopStatus.ERROR:
            table.add_row("Last error", Text(state.last_error, style="red"))
        self.console.print()
        self.console.print(table)

    def _on_iteration_start(self, iteration: int) -> None:
        self._events_shown = 0
        self.console.rule(f"[bold]Iteration {iteration}[/bold]")

    def _on_event(self, event: ToolEvent) -> None:
        if self._events_shown > self.max_events:
            return
        if self._events_shown == self.max_events:
            self._events_shown += 1
            self.console.print("[dim]... further output of this iteration hidden[/dim]")
            return
        line = _event_line(event)
        if line is None:
            return
        self._events_shown += 1
        self.console.print(line)

    def _on_iteration_complete(self, iteration: int, duration_ms: int, commits: int) -> None:
        self._iteration_times.append(duration_ms)
        state = self._state
        self.console.print(
            f"[green]✓[/green] Iteration {iteration} finished in {format_duration(duration_ms)} | "
            f"tasks {state.tasks_complete}/{state.total_tasks} | commits {commits} | "
            f"ETA {format_eta(self.eta_ms())}"
        )

    def _on_tasks_updated(self, done: int, total: int) -> None:
        if self._last_progress == (done, total):
            return
        self._last_progress = (done, total)
        self.console.print(f"[cyan]Tasks[/cyan] {_progress_bar(done, total)}")

    def _on_pause(self) -> None:
        self.console.print(
            "[yellow]⏸ Paused.[/yellow] Run 'ralph resume' (or delete .ralph-pause) to continue."
        )

    def _on_resume(self) -> None:
        self.console.print("[green]▶ Resumed[/green]")

    def _on_complete(self) -> None:
        self.console.print("[bold green]All tasks complete[/bold green]")

    def _on_error(self, message: str) -> None:
        self.console.print(Text(f"✗ {message}", style="red"))


def start_app(
    options: LoopOptions,
    persisted_state: PersistedState,
    on_quit: Optional[Callable[[], None]] = None,
    *,
    console: Optional[Console] = None,
) -> AppHandle:
    """Print the run header and return the handle that reports on the loop."""
    handle = AppHandle(options, persisted_state, on_quit, console=console)
    resumed = persisted_state.iteration_count
    header = Table(show_header=False, box=None)
    header.add_row("Plan:", options.plan_file)
    header.add_row("Model:", options.model)
    header.add_row("Project:", str(options.project_dir))
    if resumed:
        header.add_row("Resuming:", f"{resumed} iterations, {format_duration(persisted_state.elapsed_ms())} elapsed")
    handle.console.print(Panel(header, title="[bold]Ralph[/bold]", expand=False))
    return handle
