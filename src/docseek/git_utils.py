"""Git helpers for reading documents from a local checkout."""

from __future__ import annotations

import subprocess
from pathlib import Path


class GitError(Exception):
    """Raised when a git operation fails."""


def _run_git(args: list[str], cwd: Path) -> str:
    """Run a git command and return stdout. Raises GitError on failure."""
    try:
        result = subprocess.run(
            ["git"] + args,
            capture_output=True,
            text=True,
            cwd=cwd,
            check=True,
        )
        return result.stdout.strip()
    except subprocess.CalledProcessError as e:
        raise GitError(f"git {' '.join(args)} failed: {e.stderr.strip()}") from e
    except FileNotFoundError:
        raise GitError("git is not installed or not in PATH")


def get_head_sha(repo_path: Path) -> str:
    """Return the full SHA of HEAD."""
    return _run_git(["rev-parse", "HEAD"], cwd=repo_path)


def get_remote_url(repo_path: Path, remote: str = "origin") -> str | None:
    """Return the URL of ``remote``, or None if it is not configured."""
    try:
        return _run_git(["remote", "get-url", remote], cwd=repo_path) or None
    except GitError:
        return None


def list_tracked_files(repo_path: Path, patterns: list[str] | None = None) -> list[str]:
    """Return repo-relative paths of tracked files matching ``patterns``, sorted."""
    args = ["ls-files", "-z"]
    if patterns:
        args.append("--")
        args.extend(patterns)
    output = _run_git(args, cwd=repo_path)
    if not output:
        return []
    return sorted(p for p in output.split("\0") if p)
