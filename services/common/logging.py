import logging
import sys
import structlog

def configure_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure global logging for the application.
    
    Args:
        log_level: "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
        json_format: If True, outputs JSON. If False, outputs pretty text (Local).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # azure-identity logs through the standard library, route it to the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )
    logging.getLogger("azure").setLevel(max(level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
