# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Directory to run in. Useful when the caller is not inside the repo.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def get_current_ref(cwd: Optional[str | Path] = None) -> str:
    """
    Fully qualified ref HEAD points at, e.g. refs/heads/main.

    Fails on a detached HEAD.
    """
    return _git(["symbolic-ref", "HEAD"], cwd=cwd)


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def user_name(cwd: Optional[str | Path] = None) -> str:
    """git config user.name (empty string if unset)."""
    return _git(["config", "user.name"], cwd=cwd)


def github_slug(url: str) -> Optional[str]:
    """
    owner/repo for a github.com remote URL, else None.

      https://github.com/octo/hello.git -> octo/hello
      git@github.com:octo/hello.git     -> octo/hello
    """
    if "github.com" not in url:
        return None
    tail = url.split("github.com", 1)[1].lstrip(":/")
    parts = [p for p in tail.split("/") if p]
    if len(parts) < 2:
        return None
    owner, repo = parts[-2], parts[-1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return f"{owner}/{repo}"
