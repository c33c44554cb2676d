"""Historical source providers."""

from history.git import GitSourceProvider, SourceProvider, git_repo

__all__ = ["GitSourceProvider", "SourceProvider", "git_repo"]
