"""Provide small git helpers used by the loop to measure agent commits."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger


def _run_git(project_dir: Path, *args: str) -> Optional[subprocess.CompletedProcess[str]]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=project_dir,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        logger.warning("Unable to run git {}: {}", args[0] if args else "", exc)
        return None


def _git_is_repo(project_dir: Path) -> bool:
    result = _run_git(project_dir, "rev-parse", "--is-inside-work-tree")
    return result is not None and result.returncode == 0 and result.stdout.strip().lower() == "true"


def _git_head_sha(project_dir: Path) -> Optional[str]:
    result = _run_git(project_dir, "rev-parse", "HEAD")
    if result is None or result.returncode != 0:
        return None
    return result.stdout.strip() or None


def _git_commits_since(project_dir: Path, base_sha: Optional[str]) -> int:
    """Count commits reachable from HEAD but not from `base_sha`.

    Args:
        project_dir: Repository working directory.
        base_sha: Baseline commit recorded when the run started. When it is
            unknown (the run began outside a repository or before the first
            commit), every commit on HEAD counts.

    Returns:
        The number of new commits, or 0 when git cannot answer.
    """
    revision = f"{base_sha}..HEAD" if base_sha else "HEAD"
    result = _run_git(project_dir, "rev-list", "--count", revision)
    if result is None or result.returncode != 0:
        if base_sha:
            logger.debug("git rev-list failed for {}: {}", revision, result.stderr.strip() if result else "")
        return 0
    try:
        return int(result.stdout.strip() or 0)
    except ValueError:
        return 0
