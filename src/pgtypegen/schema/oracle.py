"""Schema oracle: ask PostgreSQL what columns a query would return.

``PsqlOracle`` uses psql's ``\\gdesc``, which prepares the statement and
prints the name and type of every result column without executing it::

    $ printf 'select 1 as a\\n\\\\gdesc\\n' | psql -X -A -t -F $'\\x1f' $URL
    a<US>integer
"""

from __future__ import annotations

import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Protocol

import structlog

from pgtypegen.config.models import DatabaseConfig
from pgtypegen.core.errors import OracleError
from pgtypegen.typegen.models import ColumnDescriptor

logger = structlog.get_logger()

FIELD_SEPARATOR = "\x1f"
NO_COLUMNS_MESSAGE = "The command has no result, or the result has no columns."
COMMENT_HINT = "Try moving comments to dedicated lines."


@dataclass(frozen=True)
class Described:
    """The query returns these columns, in order."""

    columns: tuple[ColumnDescriptor, ...]


@dataclass(frozen=True)
class VoidResult:
    """The query is valid and returns no columns."""


@dataclass(frozen=True)
class DescribeFailure:
    """The database rejected the query, or psql produced nothing usable."""

    query_sent: str
    diagnostic: str
    hint: str | None = None


DescribeResult = Described | VoidResult | DescribeFailure


class SchemaOracle(Protocol):
    """Anything that can describe the result shape of a query."""

    def describe(self, text: str) -> DescribeResult: ...


def hint_for(text: str) -> str | None:
    """A suggestion for the user when describing ``text`` failed."""
    return COMMENT_HINT if "--" in text else None


def parse_gdesc(output: str) -> tuple[ColumnDescriptor, ...]:
    """Parse unaligned, tuples-only ``\\gdesc`` rows into descriptors."""
    columns: list[ColumnDescriptor] = []
    for line in output.splitlines():
        if FIELD_SEPARATOR not in line:
            continue
        label, regtype = line.rsplit(FIELD_SEPARATOR, 1)
        columns.append(ColumnDescriptor(label=label, regtype=regtype.strip()))
    return tuple(columns)


class PsqlOracle:
    """Describe queries by piping them into a psql subprocess.

    Every call runs its own process, so one instance can be shared by all
    file workers. Nothing is retried.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._command = shlex.split(config.psql_command)
        self._url = config.url
        self._timeout = config.describe_timeout_sec

    @property
    def argv(self) -> list[str]:
        return [
            *self._command,
            "--no-psqlrc",
            "-X",
            "-A",
            "-t",
            "-F",
            FIELD_SEPARATOR,
            "-v",
            "ON_ERROR_STOP=1",
            self._url,
        ]

    def describe(self, text: str) -> DescribeResult:
        """Describe one single-statement query.

        Raises:
            OracleError: psql itself could not be started.
        """
        stdin = f"{text}\n\\gdesc\n"
        start = time.monotonic()
        try:
            proc = subprocess.run(
                self.argv,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise OracleError.unavailable(self._command[0], str(e)) from e
        except subprocess.TimeoutExpired:
            logger.warning("describe_timeout", timeout_sec=self._timeout)
            return DescribeFailure(
                query_sent=text,
                diagnostic=f"psql timed out after {self._timeout}s",
                hint=hint_for(text),
            )

        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        stdout = proc.stdout or ""
        stderr = proc.stderr or ""

        if NO_COLUMNS_MESSAGE in stdout or NO_COLUMNS_MESSAGE in stderr:
            logger.debug("query_described", columns=0, elapsed_ms=elapsed_ms)
            return VoidResult()

        if proc.returncode != 0:
            return DescribeFailure(
                query_sent=text,
                diagnostic=stderr.strip() or stdout.strip() or f"psql exited with {proc.returncode}",
                hint=hint_for(text),
            )

        columns = parse_gdesc(stdout)
        if not columns:
            return DescribeFailure(
                query_sent=text,
                diagnostic=stderr.strip() or "psql returned no output",
                hint=hint_for(text),
            )

        logger.debug("query_described", columns=len(columns), elapsed_ms=elapsed_ms)
        return Described(columns=columns)
