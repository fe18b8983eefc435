"""Candidate file discovery from include/exclude globs.

Pure filesystem I/O. Patterns are fnmatch globs matched against POSIX paths
relative to the root; a leading ``**/`` also matches at the root itself.
"""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

# Never traversed, whatever the include patterns say
PRUNED_DIRS: frozenset[str] = frozenset(
    (
        ".git",
        ".hg",
        ".svn",
        ".pgtypegen",
        "node_modules",
        ".next",
        ".turbo",
        "dist",
        "coverage",
    )
)


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    """True if the POSIX relative path matches one of the globs."""
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
            return True
    return False


def _walk(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in PRUNED_DIRS]
        for filename in filenames:
            yield Path(dirpath) / filename


def discover(root: Path, include: Iterable[str], exclude: Iterable[str] = ()) -> list[Path]:
    """Return matching files under root, sorted by relative path.

    Sorting keeps run reports and log output stable; per-file results do not
    depend on the order.
    """
    include = list(include)
    exclude = list(exclude)
    found: list[tuple[str, Path]] = []
    for path in _walk(root):
        rel = path.relative_to(root).as_posix()
        if not matches_any(rel, include):
            continue
        if exclude and matches_any(rel, exclude):
            continue
        found.append((rel, path))
    found.sort(key=lambda item: item[0])
    return [path for _rel, path in found]
