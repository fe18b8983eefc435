"""Version-control status collaborator."""

from pgtypegen.git.errors import GitError, NotARepositoryError
from pgtypegen.git.ops import CleanStatus, GitStatus, VersionControlStatus

__all__ = [
    "CleanStatus",
    "GitError",
    "GitStatus",
    "NotARepositoryError",
    "VersionControlStatus",
]
