"""structlog setup for CLI runs.

Every record carries the run id, so the logs of concurrent file workers from
one run can be grouped. Console handlers go quiet while a spinner owns the
terminal; file outputs keep receiving everything.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from pgtypegen.config.models import LoggingConfig, LogOutputConfig

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)


def set_run_id(run_id: str | None = None) -> str:
    """Start a run: set (or generate) the id stamped on every record."""
    rid = run_id or uuid4().hex[:12]
    _run_id.set(rid)
    return rid


def _add_run_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if rid := _run_id.get():
        event_dict.setdefault("run_id", rid)
    return event_dict


class ConsoleSuppressingFilter(logging.Filter):
    """Drop console records while a Rich live display owns the terminal."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        from pgtypegen.core.progress import is_console_suppressed

        return not is_console_suppressed()


def _level(name: str | None, default: int = logging.INFO) -> int:
    if not name:
        return default
    return logging.getLevelNamesMapping().get(name.upper(), default)


def _handler(output: LogOutputConfig, shared: list[structlog.types.Processor]) -> logging.Handler:
    handler: logging.Handler
    console = output.destination in ("stderr", "stdout")
    if console:
        handler = logging.StreamHandler(sys.stderr if output.destination == "stderr" else sys.stdout)
        handler.addFilter(ConsoleSuppressingFilter())
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=console and sys.stderr.isatty(), pad_event_to=0, pad_level=False
        )
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared))
    return handler


def configure_logging(*, config: LoggingConfig | None = None, level: str = "INFO") -> None:
    """Route structlog through stdlib handlers, one per configured output.

    Without ``config`` a single console output on stderr at ``level`` is used.
    Safe to call again; earlier handlers are replaced.
    """
    from pgtypegen.config.models import LoggingConfig

    config = config or LoggingConfig(level=level)
    root_level = _level(config.level)

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_run_id,  # type: ignore[list-item]
    ]
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Levels change between CLI invocations in one process (tests)
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(root_level)
    for output in config.outputs:
        handler = _handler(output, shared)
        handler.setLevel(_level(output.level, root_level))
        root_logger.addHandler(handler)
