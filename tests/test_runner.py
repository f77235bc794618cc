"""Test the `ralph` CLI end to end with a scripted agent."""

from __future__ import annotations

import io
import json
import os
import shlex
import sys
from pathlib import Path
from typing import Iterator

import pytest
from loguru import logger

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from ralph_runner import runner
from ralph_runner.models import PersistedState
from ralph_runner.state import StateStore

TICK_AGENT = """
import sys
from pathlib import Path

plan = Path(sys.argv[1])
plan.write_text(plan.read_text().replace("- [ ]", "- [x]", 1))
print("| Edit  " + sys.argv[1], flush=True)
"""

INTERRUPT_AGENT = """
import os, signal, time

os.kill(os.getppid(), signal.SIGINT)
time.sleep(30)
"""


@pytest.fixture(autouse=True)
def _restore_logger() -> Iterator[None]:
    yield
    logger.remove()
    logger.add(sys.stderr)


def _main(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        runner.main(argv)
    return int(excinfo.value.code or 0)


def _project(tmp_path: Path, plan: str = "- [ ] one\n- [ ] two\n", config: str = "pause_poll_seconds: 0.05\n") -> Path:
    project = tmp_path / "project"
    project.mkdir()
    (project / "plan.md").write_text(plan)
    (project / ".ralph.yaml").write_text(config)
    return project


def _script_command(tmp_path: Path, source: str, *args: str) -> str:
    script = tmp_path / "agent.py"
    script.write_text(source)
    return " ".join(shlex.quote(part) for part in [sys.executable, str(script), *args])


def test_run_completes_plan_and_clears_state(tmp_path: Path, capsys) -> None:
    project = _project(tmp_path)
    command = _script_command(tmp_path, TICK_AGENT, "{plan}")

    code = _main(["--project-dir", str(project), "--agent-command", command, "-y"])

    assert code == 0
    assert (project / "plan.md").read_text() == "- [x] one\n- [x] two\n"
    assert not (project / ".ralph-state.json").exists()
    assert not (project / ".ralph-lock").exists()
    assert (project / ".ralph.log").read_text().startswith("=== Ralph Log Started: ")
    output = capsys.readouterr().out
    assert "Iteration 2" in output
    assert "All tasks complete" in output
    assert "Ralph Summary" in output


def test_run_subcommand_resumes_previous_state(tmp_path: Path, capsys) -> None:
    project = _project(tmp_path, plan="- [x] one\n- [ ] two\n")
    StateStore(project).save(PersistedState(start_time=1, initial_commit_hash=None, iteration_times=[5_000], plan_file="plan.md"))
    command = _script_command(tmp_path, TICK_AGENT, "{plan}")

    code = _main(["run", "--project-dir", str(project), "--agent-command", command, "--yes"])

    assert code == 0
    assert "Iteration 2" in capsys.readouterr().out
    assert not (project / ".ralph-state.json").exists()


def test_declining_reset_for_new_plan_exits_cleanly(tmp_path: Path, monkeypatch, capsys) -> None:
    project = _project(tmp_path)
    old = PersistedState(start_time=1, initial_commit_hash=None, iteration_times=[5_000], plan_file="old.md")
    StateStore(project).save(old)
    monkeypatch.setattr("sys.stdin", io.StringIO("n\n"))

    code = _main(["--project-dir", str(project), "--agent-command", "unused"])

    assert code == 0
    assert "Exiting without changes." in capsys.readouterr().out
    assert StateStore(project).load() == old
    assert not (project / ".ralph-lock").exists()


def test_lock_held_exits_with_failure(tmp_path: Path, capsys) -> None:
    project = _project(tmp_path)
    (project / ".ralph-lock").write_text(str(os.getpid()))

    code = _main(["--project-dir", str(project), "--agent-command", "unused", "-y"])

    assert code == 1
    assert "Another ralph instance is running" in capsys.readouterr().err
    assert (project / ".ralph-lock").exists()


def test_repeated_agent_failures_exit_with_failure(tmp_path: Path) -> None:
    project = _project(tmp_path, config="pause_poll_seconds: 0.05\nmax_consecutive_failures: 2\n")
    command = " ".join(shlex.quote(part) for part in [sys.executable, "-c", "import sys; sys.exit(1)"])

    code = _main(["--project-dir", str(project), "--agent-command", command, "-y"])

    assert code == 1
    state = StateStore(project).load()
    assert state is not None
    assert len(state.iteration_times) == 1
    assert not (project / ".ralph-lock").exists()


def test_max_iterations_stops_and_keeps_state(tmp_path: Path) -> None:
    project = _project(tmp_path)
    command = " ".join(shlex.quote(part) for part in [sys.executable, "-c", "print('no progress')"])

    code = _main(["--project-dir", str(project), "--agent-command", command, "--max-iterations", "1", "-y"])

    assert code == 0
    state = StateStore(project).load()
    assert state is not None
    assert len(state.iteration_times) == 1


def test_ctrl_c_stops_run_with_interrupt_code(tmp_path: Path) -> None:
    project = _project(tmp_path)
    command = _script_command(tmp_path, INTERRUPT_AGENT)

    code = _main(["--project-dir", str(project), "--agent-command", command, "-y"])

    assert code == 130
    state = StateStore(project).load()
    assert state is not None
    assert state.iteration_times == []
    assert not (project / ".ralph-lock").exists()


def test_pause_resume_commands(tmp_path: Path, capsys) -> None:
    assert _main(["pause", "--project-dir", str(tmp_path)]) == 0
    assert (tmp_path / ".ralph-pause").exists()

    assert _main(["resume", "--project-dir", str(tmp_path)]) == 0
    assert not (tmp_path / ".ralph-pause").exists()

    assert _main(["resume", "--project-dir", str(tmp_path)]) == 0
    assert "No pause was requested." in capsys.readouterr().out


def test_pause_toggle(tmp_path: Path) -> None:
    assert _main(["pause", "--toggle", "--project-dir", str(tmp_path)]) == 0
    assert (tmp_path / ".ralph-pause").exists()

    assert _main(["pause", "--toggle", "--project-dir", str(tmp_path)]) == 0
    assert not (tmp_path / ".ralph-pause").exists()


def test_status_json(tmp_path: Path, capsys) -> None:
    project = _project(tmp_path, plan="- [x] one\n- [ ] two\n- [ ] three\n")
    StateStore(project).save(
        PersistedState(start_time=1, initial_commit_hash="abc", iteration_times=[60_000], plan_file="plan.md")
    )
    (project / ".ralph-pause").write_text("1")

    code = _main(["status", "--project-dir", str(project), "--json"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["running"] is False
    assert payload["pause_requested"] is True
    assert (payload["tasks_complete"], payload["total_tasks"]) == (1, 3)
    assert payload["iterations"] == 1
    assert payload["eta_ms"] == 120_000
    assert payload["initial_commit"] == "abc"


def test_status_text_without_state(tmp_path: Path, capsys) -> None:
    project = _project(tmp_path)

    assert _main(["status", "--project-dir", str(project)]) == 0

    output = capsys.readouterr().out
    assert "not running" in output
    assert "plan.md (0/2 tasks)" in output
    assert "State:   none" in output


def test_invalid_max_iterations_is_rejected(tmp_path: Path) -> None:
    assert _main(["--project-dir", str(tmp_path), "--max-iterations", "0"]) == 2
