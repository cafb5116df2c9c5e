# src/bulkimport/core/logging.py
"""Structured logging for import runs.

structlog is routed through stdlib logging with ProcessorFormatter, so
modules using logging.getLogger(__name__) and modules using
structlog.get_logger() render the same way (JSON or console).

Log lines go to stderr. stdout carries command output only, e.g. the JSON
printed by `bulkimport status`.

Context carried in structlog contextvars:
    serial              bound for the whole run by bind_run_context()
    bunch, bunch_file   bound per bunch by bind_bunch_context()

Worker threads started inside bind_run_context() with a copied context
inherit the serial.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

from bulkimport.contracts.records import Bunch

PACKAGE_LOGGER = "bulkimport"

# Chatty at DEBUG; row traces are what debug mode is for.
_NOISY_LOGGERS: tuple[str, ...] = (
    "dynaconf",
    "pluggy",
)


def _render_chain(json_output: bool, stream: TextIO) -> list[Any]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=stream.isatty())]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        json_output: One JSON object per line instead of console output
        level: Root log level (DEBUG, INFO, WARNING, ERROR)
        stream: Destination (defaults to the current sys.stderr)
    """
    log_level = getattr(logging, level.upper())
    out = stream if stream is not None else sys.stderr

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure logging; cached loggers would keep the old chain
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(out)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[ProcessorFormatter.remove_processors_meta, *_render_chain(json_output, out)],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.NOTSET)

    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


def enable_row_traces() -> None:
    """Let bulkimport's DEBUG lines through whatever the root level is.

    Used for settings with debug_mode, where observers log one trace entry
    per expanded attribute.
    """
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)


@contextmanager
def bind_run_context(serial: str) -> Iterator[None]:
    """Bind the run serial to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(serial=serial):
        yield


@contextmanager
def bind_bunch_context(bunch: Bunch) -> Iterator[None]:
    with structlog.contextvars.bound_contextvars(bunch=bunch.index, bunch_file=bunch.path.name):
        yield
