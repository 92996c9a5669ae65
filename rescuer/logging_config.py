"""
Log output for a rescue run.

Pipeline and provider modules log through stdlib ``logging``; the pipeline
binds ``block_number``, ``target_block`` and ``bundle_id`` with
``structlog.contextvars`` for the duration of an attempt, so every line
emitted while a bundle is in flight carries the attempt it belongs to.
Lines are rendered as JSON, one per event, unless the level is DEBUG, in
which case they go to a readable console renderer.
"""

import logging
import sys
from typing import List, Optional

import structlog

# Per-request chatter from the HTTP stack drowns out one line per block
QUIET_LOGGERS = ("httpcore", "httpx")


def _context_processors() -> List[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def setup_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Route all rescue logging to stdout with attempt context attached.

    Args:
        log_level: Log level name (default: INFO)
        json_logs: Force JSON (True) or console (False) output; by default
            JSON is used for every level except DEBUG
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    if json_logs is None:
        json_logs = level != logging.DEBUG

    if json_logs:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        exc_processors = [structlog.processors.format_exc_info]
    else:
        renderer = structlog.dev.ConsoleRenderer()
        exc_processors = []

    structlog.configure(
        processors=[
            *_context_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            *exc_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*_context_processors(), *exc_processors],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
