"""Structured logging for pre-fill sessions.

Remote lookups fail without aborting the run, so their failures surface as
log events rather than exceptions. Each event names the field and the error
kind, and every event logged during ``ManifestPrefill.run`` also carries the
package being pre-filled:
  {"event": "field_unavailable", "field": "detection.license",
   "error_kind": "TRANSIENT", "package_identifier": "Owner.App",
   "package_version": "1.2.3"}

The package identity travels through ``structlog.contextvars``. Tasks copy
the current context when they are created, so the per-field tasks started
inside ``bind_package`` log it too.

Usage:
    from winget_prefill.logging_config import bind_package, get_logger, setup_logging

    setup_logging(environment="production")
    logger = get_logger(__name__)
    with bind_package("Owner.App", "1.2.3"):
        logger.info("prefill_started")
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import AbstractContextManager
from typing import Any

import structlog


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog for pre-fill sessions.

    Production renders one JSON object per line; anything else renders
    colorized console output.

    Args:
        environment: "development" or "production". Reads from
                     ENVIRONMENT env var if not provided.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Reads from LOG_LEVEL env var if not provided.
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = getattr(logging, (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper())

    if env == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx logs one line per request; those only help when debugging retries
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def bind_package(identifier: str, version: str) -> AbstractContextManager[Any]:
    """Attach the package identity to every event logged inside the block."""
    return structlog.contextvars.bound_contextvars(
        package_identifier=identifier,
        package_version=version,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
