"""Working tree status via pygit2, used as the migration clean-check."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygit2
import structlog

from pgtypegen.git.errors import NotARepositoryError

logger = structlog.get_logger()

# Untracked files don't make a tree dirty, matching `git diff --exit-code`
_IGNORED_FLAGS = pygit2.GIT_STATUS_WT_NEW | pygit2.GIT_STATUS_IGNORED

_FLAG_LABELS: tuple[tuple[int, str], ...] = (
    (pygit2.GIT_STATUS_INDEX_NEW, "A"),
    (pygit2.GIT_STATUS_INDEX_MODIFIED, "M"),
    (pygit2.GIT_STATUS_INDEX_DELETED, "D"),
    (pygit2.GIT_STATUS_INDEX_RENAMED, "R"),
    (pygit2.GIT_STATUS_WT_MODIFIED, "M"),
    (pygit2.GIT_STATUS_WT_DELETED, "D"),
    (pygit2.GIT_STATUS_WT_RENAMED, "R"),
    (pygit2.GIT_STATUS_CONFLICTED, "U"),
)


@dataclass(frozen=True)
class CleanStatus:
    """Result of a working tree check."""

    clean: bool
    diagnostic: str | None = None


class VersionControlStatus(Protocol):
    """Anything that can tell whether the working tree is clean."""

    def check(self) -> CleanStatus: ...


class GitStatus:
    """Clean/dirty check for the repository containing ``path``."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    def _open(self) -> pygit2.Repository:
        discovered = pygit2.discover_repository(str(self._path))
        if discovered is None:
            raise NotARepositoryError(str(self._path))
        try:
            return pygit2.Repository(discovered)
        except pygit2.GitError as e:
            raise NotARepositoryError(str(self._path)) from e

    def check(self) -> CleanStatus:
        try:
            repo = self._open()
        except NotARepositoryError as e:
            return CleanStatus(clean=False, diagnostic=str(e))

        dirty: list[str] = []
        for path, flags in sorted(repo.status().items()):
            if flags & ~_IGNORED_FLAGS == 0:
                continue
            label = next((code for flag, code in _FLAG_LABELS if flags & flag), "?")
            dirty.append(f"{label} {path}")

        if dirty:
            logger.debug("working_tree_dirty", path=str(self._path), changes=len(dirty))
            return CleanStatus(clean=False, diagnostic="\n".join(dirty))
        return CleanStatus(clean=True)
