"""
Structured logging configuration with structlog.

Production writes one JSON object per line (for log aggregation),
development writes colored console output.

Usage:
    # once, at application startup
    from kyc_core.core.logging import configure_logging
    configure_logging(environment="production")

    # then anywhere
    import structlog
    log = structlog.get_logger(__name__)
    log.info("kyc_transition_committed", subject_id="...", action="approved")
"""

import logging
from typing import List, Optional

import structlog
from structlog.typing import Processor

from kyc_core.core.config import get_settings


def _resolve_level(level_name: str) -> int:
    return getattr(logging, level_name.upper(), logging.INFO)


def configure_logging(environment: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Configure structlog for the whole process.

    Args:
        environment: 'production' for JSON output, anything else for console.
                     Defaults to settings.environment.
        level: Minimum level name (e.g. 'INFO'). Defaults to settings.log_level.
    """
    settings = get_settings()
    environment = environment or settings.environment
    level = level or settings.log_level

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment.lower() == "production":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
