# observability/log.py
# structlog configuration for the core: JSON or console rendering, stdlib bridge, bound context helpers.

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, Optional

import structlog

_configured = False


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    service_name: str = "cognitive-core",
) -> None:
    """
    Configure stdlib logging + structlog once per process.

    Level/format fall back to CORE_LOG_LEVEL / CORE_LOG_FORMAT ("json" | "console").
    Calling again reconfigures (useful for CLI flags that override env).
    """
    global _configured
    level_name = (log_level or os.getenv("CORE_LOG_LEVEL", "INFO")).upper()
    fmt = (log_format or os.getenv("CORE_LOG_FORMAT", "console")).lower()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)
    _configured = True


def get_logger(name: str, **initial: Any) -> structlog.stdlib.BoundLogger:
    """Module logger; works before setup_logging() too (structlog defaults)."""
    log = structlog.get_logger(name)
    return log.bind(**initial) if initial else log


def bind_context(**values: Any) -> None:
    """Attach values (stream_id, simulation, ...) to every log line on this thread/task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


def is_configured() -> bool:
    return _configured


def context_snapshot() -> Dict[str, Any]:
    return dict(structlog.contextvars.get_contextvars())


__all__ = ["setup_logging", "get_logger", "bind_context", "clear_context", "is_configured", "context_snapshot"]
