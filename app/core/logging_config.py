"""
structlog setup.

Production (ENVIRONMENT=production) emits one JSON object per line; anything
else gets the console renderer. Context bound by the request middleware
(request_id, correlation_id, path) is merged into every line.

    from app.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Subscription updated", subscription_id="sub_123", status="PAST_DUE")
"""

import logging
import os
import sys
from typing import Any, List, Optional

import structlog

IS_PRODUCTION = os.getenv("ENVIRONMENT") == "production"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "stripe")


def configure_logging(production: bool = IS_PRODUCTION, level: int = logging.INFO) -> None:
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.dev.set_exc_info,
    ]
    if production:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # No ANSI colours in captured pytest output
        processors.append(structlog.dev.ConsoleRenderer(colors="pytest" not in sys.modules))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stdlib loggers (uvicorn, our api modules, libraries) share stdout
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> Any:
    return structlog.get_logger(name)


configure_logging()
