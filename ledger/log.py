"""
Structured Logging

structlog is configured once per process, with the processor chain
below. Components ask for a logger with get_logger(__name__) and log
events as snake_case names with key/value context.

Domain outcomes (not found, invalid state, conflicts) are logged at
debug or info. Only storage failures are logged as warnings or errors.
"""

import logging
import sys
from typing import Optional

import structlog

from ledger.config import get_settings


_configured = False


def configure_logging(
    level: Optional[str] = None,
    render_json: Optional[bool] = None,
) -> None:
    """
    Configure structlog. A stderr root handler is added only when the
    host application has not configured one; the level applies to the
    ledger loggers.
    
    Args:
        level: Minimum level; defaults to LEDGER_LOG_LEVEL
        render_json: JSON lines or console output; defaults to LEDGER_LOG_RENDER_JSON
    """
    global _configured
    
    settings = get_settings().logging
    level = (level or settings.level).upper()
    if render_json is None:
        render_json = settings.render_json
    
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level),
    )
    logging.getLogger("ledger").setLevel(getattr(logging, level))
    
    renderer = (
        structlog.processors.JSONRenderer()
        if render_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: Optional[str] = None):
    """Return a bound structlog logger, configuring logging on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
