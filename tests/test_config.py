"""Test loading `.ralph.yaml`."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from ralph_runner.config import RunnerConfig, load_runner_config


def test_missing_config_yields_defaults(tmp_path: Path) -> None:
    config, err = load_runner_config(tmp_path)

    assert err is None
    assert config == RunnerConfig()
    assert config.plan == "plan.md"
    assert config.max_consecutive_failures == 3


def test_empty_config_yields_defaults(tmp_path: Path) -> None:
    (tmp_path / ".ralph.yaml").write_text("")

    config, err = load_runner_config(tmp_path)

    assert err is None
    assert config == RunnerConfig()


def test_config_values_are_loaded(tmp_path: Path) -> None:
    (tmp_path / ".ralph.yaml").write_text(
        "plan: docs/plan.md\n"
        "model: anthropic/claude\n"
        "agent_command: claude -p {prompt}\n"
        "max_iterations: 10\n"
        "pause_poll_seconds: 0.5\n"
        "log_level: debug\n"
        "env:\n"
        "  NO_COLOR: '1'\n"
    )

    config, err = load_runner_config(tmp_path)

    assert err is None
    assert config.plan == "docs/plan.md"
    assert config.model == "anthropic/claude"
    assert config.agent_command == "claude -p {prompt}"
    assert config.max_iterations == 10
    assert config.pause_poll_seconds == 0.5
    assert config.log_level == "DEBUG"
    assert config.env == {"NO_COLOR": "1"}


def test_invalid_values_fall_back_with_error(tmp_path: Path) -> None:
    (tmp_path / ".ralph.yaml").write_text("max_iterations: 0\nlog_level: chatty\n")

    config, err = load_runner_config(tmp_path)

    assert config == RunnerConfig()
    assert err is not None
    assert "max_iterations" in err
    assert "log_level" in err


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    (tmp_path / ".ralph.yaml").write_text("planfile: typo.md\n")

    config, err = load_runner_config(tmp_path)

    assert config == RunnerConfig()
    assert err is not None and "planfile" in err


def test_broken_yaml_reports_error(tmp_path: Path) -> None:
    (tmp_path / ".ralph.yaml").write_text("plan: [unclosed\n")

    config, err = load_runner_config(tmp_path)

    assert config == RunnerConfig()
    assert err is not None and "YAMLError" in err


def test_non_mapping_yaml_reports_error(tmp_path: Path) -> None:
    (tmp_path / ".ralph.yaml").write_text("- just\n- a list\n")

    _, err = load_runner_config(tmp_path)

    assert err is not None and "expected object" in err
