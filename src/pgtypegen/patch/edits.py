"""Byte-span edits and atomic file writes."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from pgtypegen.core.errors import InternalError, WriteError
from pgtypegen.typegen.models import Span


@dataclass(frozen=True)
class TextEdit:
    """Replace ``span`` of the original content with ``text``.

    A zero-width span is an insertion.
    """

    span: Span
    text: str

    @classmethod
    def insert(cls, offset: int, text: str) -> TextEdit:
        return cls(Span(offset, offset), text)

    @classmethod
    def delete(cls, span: Span) -> TextEdit:
        return cls(span, "")


def apply_edits(content: bytes, edits: Iterable[TextEdit]) -> bytes:
    """Apply all edits against the original offsets in one pass.

    Raises:
        InternalError: two edits overlap, or an edit is out of range.
    """
    ordered = sorted(edits, key=lambda e: (e.span.start, e.span.end))
    out: list[bytes] = []
    cursor = 0
    for edit in ordered:
        if edit.span.start < cursor or edit.span.end > len(content):
            raise InternalError.unexpected(
                "overlapping or out-of-range edit",
                start=edit.span.start,
                end=edit.span.end,
                cursor=cursor,
            )
        out.append(content[cursor : edit.span.start])
        out.append(edit.text.encode("utf-8"))
        cursor = edit.span.end
    out.append(content[cursor:])
    return b"".join(out)


def write_atomic(path: Path, data: bytes) -> None:
    """Write through a temp file in the same directory, then rename over.

    Raises:
        WriteError: the file could not be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            if path.exists():
                os.chmod(tmp, path.stat().st_mode & 0o777)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise WriteError.failed(str(path), str(e)) from e


def delete_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise WriteError.failed(str(path), str(e)) from e


def line_span(content: bytes, span: Span) -> Span:
    """Extend a statement span over a trailing ``;`` and newline."""
    end = span.end
    if content[end : end + 1] == b";":
        end += 1
    if content[end : end + 1] == b"\n":
        end += 1
    return Span(span.start, end)
