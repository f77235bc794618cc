"""Test git helpers against a real repository."""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from ralph_runner.git_utils import _git_commits_since, _git_head_sha, _git_is_repo

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Ralph Test", "-c", "user.email=ralph@example.com", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def _commit(repo: Path, name: str) -> None:
    (repo / name).write_text(name)
    _git(repo, "add", name)
    _git(repo, "commit", "-q", "-m", f"add {name}")


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    path = tmp_path / "repo"
    path.mkdir()
    _git(path, "init", "-q")
    return path


def test_not_a_repository(tmp_path: Path) -> None:
    assert _git_is_repo(tmp_path) is False
    assert _git_head_sha(tmp_path) is None
    assert _git_commits_since(tmp_path, "deadbeef") == 0


def test_unborn_head(repo: Path) -> None:
    assert _git_is_repo(repo) is True
    assert _git_head_sha(repo) is None
    assert _git_commits_since(repo, None) == 0


def test_commits_since_baseline(repo: Path) -> None:
    _commit(repo, "a.txt")
    base = _git_head_sha(repo)
    assert base == _git(repo, "rev-parse", "HEAD")
    assert _git_commits_since(repo, base) == 0

    _commit(repo, "b.txt")
    _commit(repo, "c.txt")

    assert _git_commits_since(repo, base) == 2


def test_commits_without_baseline_count_all_of_head(repo: Path) -> None:
    _commit(repo, "a.txt")
    _commit(repo, "b.txt")

    assert _git_commits_since(repo, None) == 2


def test_unknown_baseline_counts_zero(repo: Path) -> None:
    _commit(repo, "a.txt")

    assert _git_commits_since(repo, "0" * 40) == 0
