"""
Structured logging configuration using structlog.

Synthesis runs inside CI, so JSON output is the default and the console
renderer is kept for local ``cdk synth`` runs. Records go to stderr because
``cdk synth`` prints the template on stdout.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("stack_added", stack="proj-vpc-cfnstack-pro")

Records carry ``service=<project>-infra`` once ``build_app`` binds the project.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

# Libraries that log every construct or HTTP call at INFO
NOISY_LOGGERS = ("jsii", "botocore", "urllib3")


def _add_service_name(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Derive the service field from the bound project name."""
    project = event_dict.get("project")
    if project and "service" not in event_dict:
        event_dict["service"] = f"{project}-infra"
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _add_service_name,
    ]


def _select_renderer(json_format: bool, chain: list[Processor]) -> Processor:
    if not json_format:
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    chain.append(structlog.processors.format_exc_info)
    return structlog.processors.JSONRenderer(sort_keys=True)


def configure_logging(json_format: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog for the CDK app.

    Uses stdlib integration so that records from jsii and boto go through the
    same renderer.

    Args:
        json_format: If True, output JSON (CI). If False, pretty console output.
        log_level: Minimum log level. Unknown names fall back to INFO.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    chain = _shared_processors()
    renderer = _select_renderer(json_format, chain)

    structlog.configure(
        processors=[*chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically named after the calling module."""
    return structlog.get_logger(name)


def bind_contextvars(**kwargs: Any) -> None:
    """Bind key-value pairs included in every subsequent log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_contextvars() -> None:
    structlog.contextvars.clear_contextvars()
