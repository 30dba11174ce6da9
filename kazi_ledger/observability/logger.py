"""
Structured Logging

DESIGN DECISION: Every significant action is logged as a key=value event
(account_created, transaction_recorded, parse_failed, ...). This provides:
1. Debugging capability
2. A trace of what the assistant suggested versus what was saved

Log lines are diagnostic only. They are never persisted as ledger records.
"""

import logging
import sys

import structlog


def configure_logging(debug: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger.

    Call once from the entry point, before components are created.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.INFO,
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
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    """Get a logger bound to a component name."""
    return structlog.get_logger(name)
