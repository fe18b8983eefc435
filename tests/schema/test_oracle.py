"""Tests for schema/oracle.py (psql \\gdesc oracle).

subprocess.run is patched; no database is needed.
"""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from pgtypegen.config.models import DatabaseConfig
from pgtypegen.core.errors import ErrorCode, OracleError
from pgtypegen.schema.oracle import (
    COMMENT_HINT,
    FIELD_SEPARATOR,
    NO_COLUMNS_MESSAGE,
    Described,
    DescribeFailure,
    PsqlOracle,
    VoidResult,
    parse_gdesc,
)

URL = "postgresql://u:p@localhost:5432/db"


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=["psql"], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def psql() -> PsqlOracle:
    return PsqlOracle(DatabaseConfig(url=URL, describe_timeout_sec=2))


class TestParseGdesc:
    """Parsing of unaligned \\gdesc rows."""

    def test_rows_become_columns(self) -> None:
        output = f"a{FIELD_SEPARATOR}integer\nb{FIELD_SEPARATOR}character varying(1)\n"

        columns = parse_gdesc(output)

        assert [(c.label, c.regtype) for c in columns] == [("a", "integer"), ("b", "character varying(1)")]

    def test_label_with_separator_splits_on_last(self) -> None:
        output = f"odd{FIELD_SEPARATOR}label{FIELD_SEPARATOR}text\n"

        assert [(c.label, c.regtype) for c in parse_gdesc(output)] == [(f"odd{FIELD_SEPARATOR}label", "text")]

    def test_noise_lines_skipped(self) -> None:
        assert parse_gdesc("\nSET\n") == ()


class TestPsqlOracle:
    """describe() outcomes."""

    def test_argv(self) -> None:
        oracle = PsqlOracle(DatabaseConfig(url=URL, psql_command="docker compose exec -T db psql"))

        argv = oracle.argv

        assert argv[:5] == ["docker", "compose", "exec", "-T", "db"]
        assert "--no-psqlrc" in argv
        assert argv[argv.index("-F") + 1] == FIELD_SEPARATOR
        assert argv[-1] == URL

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_described(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        mock_run.return_value = _completed(stdout=f"a{FIELD_SEPARATOR}integer\n")

        result = psql.describe("select 1 as a")

        assert isinstance(result, Described)
        assert [(c.label, c.regtype) for c in result.columns] == [("a", "integer")]
        kwargs = mock_run.call_args.kwargs
        assert kwargs["input"] == "select 1 as a\n\\gdesc\n"
        assert kwargs["timeout"] == 2

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_no_columns_is_void(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        mock_run.return_value = _completed(stdout=NO_COLUMNS_MESSAGE + "\n")

        assert isinstance(psql.describe("update t set a = 1"), VoidResult)

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_database_error_is_failure(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        mock_run.return_value = _completed(
            returncode=3, stderr='ERROR:  relation "nope" does not exist\nLINE 1: select * from nope\n'
        )

        result = psql.describe("select * from nope")

        assert isinstance(result, DescribeFailure)
        assert result.query_sent == "select * from nope"
        assert 'relation "nope" does not exist' in result.diagnostic
        assert result.hint is None

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_failure_with_comment_gets_hint(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        mock_run.return_value = _completed(returncode=3, stderr="ERROR:  syntax error at end of input\n")

        result = psql.describe("select 1 -- trailing comment")

        assert isinstance(result, DescribeFailure)
        assert result.hint == COMMENT_HINT

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_empty_output_is_failure(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        mock_run.return_value = _completed(stdout="")

        result = psql.describe("select 1")

        assert isinstance(result, DescribeFailure)
        assert result.diagnostic == "psql returned no output"

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_timeout_is_failure(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="psql", timeout=2)

        result = psql.describe("select pg_sleep(10)")

        assert isinstance(result, DescribeFailure)
        assert "timed out" in result.diagnostic

    @patch("pgtypegen.schema.oracle.subprocess.run")
    def test_missing_psql_raises(self, mock_run: MagicMock, psql: PsqlOracle) -> None:
        """A missing executable is fatal for the whole run, not per query."""
        mock_run.side_effect = FileNotFoundError("No such file or directory: 'psql'")

        with pytest.raises(OracleError) as exc_info:
            psql.describe("select 1")

        assert exc_info.value.code == ErrorCode.ORACLE_UNAVAILABLE
