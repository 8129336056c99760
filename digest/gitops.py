from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List

logger = logging.getLogger("devops_content.digest.git")


def branch_name(year: int, week: int) -> str:
    return f"news-{year}-w{week}"


def commit_message(week: int, year: int) -> str:
    return f"chore(news): add digest for week {week}, {year}"


def _git(repo: Path, *args: str) -> str:
    logger.debug("git %s", " ".join(args))
    result = subprocess.run(
        ["git", *args],
        cwd=str(repo),
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def local_branches(repo: Path) -> List[str]:
    output = _git(repo, "branch", "--list", "--format=%(refname:short)")
    return [line.strip() for line in output.splitlines() if line.strip()]


def create_branch(repo: Path, name: str) -> None:
    if name in local_branches(repo):
        logger.info("Branch %s already exists, checking it out", name)
        _git(repo, "checkout", name)
        return
    logger.info("Creating branch %s", name)
    _git(repo, "checkout", "-b", name)


def commit(repo: Path, path: Path, message: str) -> None:
    _git(repo, "add", str(path))
    _git(repo, "commit", "-m", message)
    logger.info("Committed: %s", message)


def push(repo: Path, name: str) -> None:
    _git(repo, "push", "--set-upstream", "origin", name)
    logger.info("Pushed to origin/%s", name)
