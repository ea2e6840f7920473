"""Structured logging helpers shared by every engine component."""

import logging
from typing import Optional


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a component name onto every record.

    Fields passed through ``extra`` on the individual call win over the
    adapter defaults, so a service can still override ``component``.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None):
    """Return a module logger, optionally bound to an engine component.

    Args:
        name: Logger name (normally ``__name__``)
        component: Component label such as ``"visibility"`` or ``"eoi"``

    Returns:
        A plain logger, or a ComponentLoggerAdapter when component is given

    Example:
        >>> logger = get_logger(__name__, component="conversations")
        >>> logger.info("Conversation opened", extra={"event": "conversation.created"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


__all__ = ["ComponentLoggerAdapter", "get_logger"]
