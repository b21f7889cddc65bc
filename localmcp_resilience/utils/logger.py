"""
Structured logging configuration using structlog.

Development environments get human-readable colored output, everything else
gets JSON structured logs suitable for shipping to a log pipeline.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

from localmcp_resilience.core.config import settings


def configure_logging(app_env: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Configure structured logging for the process.

    Args:
        app_env: Overrides `settings.APP_ENV` when given
        level: Overrides `settings.LOG_LEVEL` when given
    """
    environment = (app_env or settings.APP_ENV).lower()
    is_development = environment in ("development", "dev", "local")

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
    ]

    if is_development:
        processors.extend(
            [
                structlog.dev.set_exc_info,
                structlog.dev.ConsoleRenderer(colors=True),
            ]
        )
    else:
        processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def add_operation_context(operation_name: str, attempt: Optional[int] = None) -> Dict[str, Any]:
    """Add wrapped-operation context to logs."""
    context: Dict[str, Any] = {"operation": operation_name}
    if attempt is not None:
        context["attempt"] = attempt
    return context
