"""Structured logging helpers: component-tagged loggers and scoped context."""

import logging
from typing import Optional


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its component tag with per-call extras."""

    def process(self, msg, kwargs):
        """Merge adapter extra with call extra; call extra wins."""
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Get a logger, optionally tagging every record with a component.

    Args:
        name: Logger name (typically __name__)
        component: Component identifier injected into all records

    Returns:
        Logger or ComponentLoggerAdapter instance

    Example:
        >>> logger = get_logger(__name__, component="sweep")
        >>> logger.info("Sweep started", extra={"event": "sweep.run.started"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger
