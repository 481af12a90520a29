# src/chunksync/core/logging.py
"""Logging setup shared by the CLI, workers and tests.

structlog and the stdlib logging module end up on one stdout handler.
Its ProcessorFormatter renders structlog events and plain stdlib records
(SQLAlchemy, Dynaconf) with the same processors, as console lines or as
JSON lines.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Capped at WARNING even when the root level is DEBUG
_CHATTY_LIBRARIES: tuple[str, ...] = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool")


def _drop_formatter_keys(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # ProcessorFormatter always sets both keys
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _pre_chain() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install the stdout handler and configure structlog.

    Replaces any handlers already on the root logger, so calling it again
    (e.g. from a test) reconfigures cleanly.

    Args:
        json_output: JSON lines instead of colored console output
        level: DEBUG, INFO, WARNING or ERROR
    """
    numeric_level = logging.getLevelName(level.upper())
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Module-level loggers must pick up a later reconfiguration
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processors=_renderer_chain(json_output), foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

