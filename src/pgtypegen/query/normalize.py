"""Turn a tagged template into query text the oracle can describe.

Interpolations become positional parameters, strictly in source order::

    sql`select * from t where a = ${a} and b = ${a}`
    -> select * from t where a = $1 and b = $2

The same holes become ``null`` in ``analysis_text``, which only feeds the
static column attribution and is never sent anywhere.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from pgtypegen.typegen.models import NormalizedQuery, QueryUsage

_TEMPLATE_ESCAPES = {"`": "`", "$": "$", "\\": "\\"}

# $$ or $tag$ opening a dollar-quoted body; $1 is a parameter, not a tag
_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")

# Token kinds that make a statement non-empty
_SIGNIFICANT = frozenset({"code", "string", "identifier"})


def unescape_template(raw: str) -> str:
    """Undo the template-literal escapes a query author has to write."""
    if "\\" not in raw:
        return raw
    out: list[str] = []
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\" and i + 1 < len(raw) and raw[i + 1] in _TEMPLATE_ESCAPES:
            out.append(_TEMPLATE_ESCAPES[raw[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def _quoted_end(text: str, start: int, quote: str, backslash_escapes: bool = False) -> int:
    """Index just past the closing quote; doubled quotes stay inside."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if backslash_escapes and ch == "\\":
            i += 2
            continue
        if ch == quote:
            if i + 1 < len(text) and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return len(text)


def _block_comment_end(text: str, start: int) -> int:
    depth = 0
    i = start
    while i < len(text):
        if text.startswith("/*", i):
            depth += 1
            i += 2
        elif text.startswith("*/", i):
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    return len(text)


def lex(text: str) -> Iterator[tuple[str, int, int]]:
    """Yield ``(kind, start, end)`` tokens of a SQL string.

    Kinds: space, comment, string, identifier, terminator, code. Only the
    distinctions needed for statement splitting are made; ``code`` tokens
    are single characters. Unterminated constructs run to the end of text.
    """
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        prev = text[i - 1] if i else ""
        kind = "code"
        j = i + 1
        if ch.isspace():
            kind = "space"
            while j < n and text[j].isspace():
                j += 1
        elif text.startswith("--", i):
            kind = "comment"
            j = text.find("\n", i)
            j = n if j == -1 else j
        elif text.startswith("/*", i):
            kind = "comment"
            j = _block_comment_end(text, i)
        elif ch in "eE" and text.startswith("'", i + 1) and not _is_word_char(prev):
            kind = "string"
            j = _quoted_end(text, i + 1, "'", backslash_escapes=True)
        elif ch == "'":
            kind = "string"
            j = _quoted_end(text, i, "'")
        elif ch == '"':
            kind = "identifier"
            j = _quoted_end(text, i, '"')
        elif ch == "$" and not _is_word_char(prev):
            match = _DOLLAR_TAG.match(text, i)
            if match:
                kind = "string"
                close = text.find(match.group(0), match.end())
                j = n if close == -1 else close + len(match.group(0))
        elif ch == ";":
            kind = "terminator"
        yield kind, i, j
        i = j


def count_statements(text: str) -> int:
    """Number of non-empty top-level statements.

    ``select 1;`` and ``select 1; -- done`` are one statement; ``;;`` is none.
    """
    count = 0
    has_content = False
    for kind, _start, _end in lex(text):
        if kind == "terminator":
            if has_content:
                count += 1
            has_content = False
        elif kind in _SIGNIFICANT:
            has_content = True
    return count + (1 if has_content else 0)


def strip_terminators(text: str) -> str:
    """Drop ``;`` after the last significant token, keeping trailing comments.

    psql executes the buffer at a terminator, which would run the query
    instead of describing it.
    """
    tokens = list(lex(text))
    last = max((end for kind, _start, end in tokens if kind in _SIGNIFICANT), default=0)
    tail = "".join(
        text[start:end] for kind, start, end in tokens if start >= last and kind != "terminator"
    )
    return (text[:last] + tail).rstrip()


def _segments(usage: QueryUsage) -> tuple[list[str], int]:
    """Unescaped literal segments around the holes, and the hole count."""
    segments: list[str] = []
    cursor = 0
    for hole in usage.holes:
        segments.append(unescape_template(usage.template[cursor : hole.start]))
        cursor = hole.end
    segments.append(unescape_template(usage.template[cursor:]))
    return segments, len(usage.holes)


def normalize(usage: QueryUsage) -> NormalizedQuery:
    """Build the oracle text and the analysis text for one usage."""
    segments, holes = _segments(usage)

    parts = [segments[0]]
    for index, segment in enumerate(segments[1:], start=1):
        parts.append(f"${index}")
        parts.append(segment)
    text = "".join(parts)

    statements = count_statements(text)
    return NormalizedQuery(
        text=strip_terminators(text) if statements == 1 else text,
        analysis_text=strip_terminators("null".join(segments)),
        statement_count=statements,
        placeholder_count=holes,
    )
