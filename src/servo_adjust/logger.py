import structlog

# structlog has no TRACE level of its own
LOG_LEVELS = {
    "TRACE": 5,
    "DEBUG": 10,
    "INFO": 20,
}


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog to emit ISO-timestamped JSON lines filtered at ``level``."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVELS.get(level, 20)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,  # Disable cache to allow level updates
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name, bound to every event as ``logger_name``

    Returns:
        Configured logger instance
    """
    from servo_adjust.config import get_config

    configure_logging(get_config().advanced.log_level)

    return structlog.get_logger(name, logger_name=name)
