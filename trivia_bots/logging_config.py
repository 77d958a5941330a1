"""Logging setup for the bot fleet.

The core modules log through ``logging.getLogger(__name__)``; this module
routes those records through structlog so every line carries a timestamp,
level, logger name and whatever per-agent context (``bot_id``) the current
task has bound.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

# Libraries that are chatty at INFO and irrelevant to a run
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "playwright")


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(use_json: bool) -> tuple[Processor, Processor]:
    """Exception processor and final renderer for the chosen output."""
    if use_json:
        return structlog.processors.format_exc_info, structlog.processors.JSONRenderer()
    return structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Install the structlog formatter on the root logger.

    Args:
        log_level: Root level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Emit one JSON object per line
        app_env: ``production`` forces JSON output
    """
    exc_processor, renderer = _renderer(json_logs or app_env == "production")
    pre_chain = _pre_chain() + [exc_processor]

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every log line emitted by the current task.

    Each asyncio task starts from a copy of its parent's context, so a
    ``bot_id`` bound inside one agent's task never shows up in a sibling's.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
