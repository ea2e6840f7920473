"""Request-scoped logging context.

Engine operations push the acting user and the entity ids they touch onto a
context variable so every log line emitted while handling the request carries
them, including lines emitted from repositories and the notification pool.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional


LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("liftout_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields currently in scope."""
    return LogContextVar.get().copy()


def push_log_context(**fields) -> Token:
    """Merge fields into the active context.

    Returns:
        Token for restoring the previous state with pop_log_context()
    """
    return LogContextVar.set({**LogContextVar.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context captured by push_log_context()."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop every context field. Used by tests."""
    LogContextVar.set({})


class log_context:
    """Context manager that scopes logging fields to a block.

    Example:
        >>> with log_context(actor_id="u-1", eoi_id="e-9"):
        ...     logger.info("Responding to interest")
    """

    def __init__(self, **fields):
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self):
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            pop_log_context(self.token)
        return False
