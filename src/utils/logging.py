"""Centralized structlog configuration for the trader and its scripts."""

import logging

import structlog

_configured = False


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog with the project-standard processor chain.

    ``json_logs`` swaps the console renderer for one JSON object per line,
    which is what the decision audit trail is shipped as in long runs.
    Safe to call multiple times; only the first call takes effect.
    """
    global _configured
    if _configured:
        return
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )
    _configured = True
