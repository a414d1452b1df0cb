"""
Structured logging configuration using structlog.

All logs are output as JSON with consistent context fields
(org_id, rule_id, webhook_id, delivery_id, event_type).
"""
import structlog
import logging
import sys

from eventcore.config import settings


# Any event-dict key containing one of these is masked
REDACTED_MARKERS = frozenset({"secret", "signature", "authorization", "token"})


def redact_secrets(logger, method_name, event_dict):
    """Replace subscription secrets and signatures with a marker."""
    for key in event_dict:
        if any(marker in key.lower() for marker in REDACTED_MARKERS):
            event_dict[key] = "[redacted]"
    return event_dict


def configure_logging():
    """Configure structlog for JSON output with context."""
    level = logging.DEBUG if settings.DEBUG else logging.INFO

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


logger = configure_logging()


def get_logger(**context):
    """
    Logger with delivery or rule context bound.

    Usage:
        log = get_logger(webhook_id=sub.id, delivery_id=delivery_id)
        log.warning("webhook_attempt_failed", attempt=2)
    """
    return logger.bind(**context)
