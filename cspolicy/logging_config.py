"""structlog logging setup for the CSP service."""

import logging
import re
import sys

import structlog

# A logged header value must not leak the nonce of a live response.
_NONCE_RE = re.compile(r"'nonce-[A-Za-z0-9+/=_-]+'")


def _rename_logger_to_module(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    if "logger" in event_dict:
        event_dict["module"] = event_dict.pop("logger")
    return event_dict


def _redact_nonces(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Mask ``'nonce-...'`` sources in string fields."""
    for key, value in event_dict.items():
        if isinstance(value, str) and "'nonce-" in value:
            event_dict[key] = _NONCE_RE.sub("'nonce-[redacted]'", value)
    return event_dict


def setup_logging(log_level: str = "info", json_format: bool = True) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    JSON lines in production, coloured console output when *json_format*
    is off. Violation reports are logged at warning level.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _rename_logger_to_module,
        _redact_nonces,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Access logs would print every report POST.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
