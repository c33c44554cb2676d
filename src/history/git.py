"""Historical source text from version control.

Used to rebuild the reference snapshot of a file whose live definitions
were loaded from a fixed revision (for example a cached or installed copy)
instead of parsing the working tree at load time.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

GIT_BIN = "git"


class SourceProvider(Protocol):
    def source(self, path: Path) -> str | None:
        """Return the text of ``path`` at the reference point, if known."""
        ...


def _git(args: list[str], cwd: Path) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            [GIT_BIN, *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        logger.warning("git invocation failed: %s", exc)
        return None


def git_repo(path: Path) -> Path | None:
    """Return the root of the git work tree containing ``path``, if any."""
    if shutil.which(GIT_BIN) is None:
        return None
    directory = path if path.is_dir() else path.parent
    result = _git(["rev-parse", "--show-toplevel"], directory)
    if result is None or result.returncode != 0:
        return None
    return Path(result.stdout.strip())


class GitSourceProvider:
    """Reads files as of a git revision with ``git show <rev>:<path>``.

    Args:
        repo_root: Root of the work tree
        rev: Revision to read from (default "HEAD")
    """

    def __init__(self, repo_root: Path, rev: str = "HEAD") -> None:
        self.repo_root = repo_root.resolve()
        self.rev = rev

    def source(self, path: Path) -> str | None:
        try:
            rel = path.resolve().relative_to(self.repo_root).as_posix()
        except ValueError:
            logger.warning("%s is outside of %s", path, self.repo_root)
            return None

        result = _git(["show", f"{self.rev}:{rel}"], self.repo_root)
        if result is None:
            return None
        if result.returncode != 0:
            err = (result.stderr or "").strip()
            logger.warning("git show %s:%s failed: %s", self.rev, rel, err)
            return None
        return result.stdout


__all__ = ["GIT_BIN", "GitSourceProvider", "SourceProvider", "git_repo"]
