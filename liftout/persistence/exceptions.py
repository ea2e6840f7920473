"""Persistence layer exceptions.

Everything raised by the database module or a repository derives from
PersistenceError, which the API boundary reports as ``internal_error``.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the engine cannot be created or the store is unreachable."""

    pass


class RecordNotFoundError(PersistenceError):
    """Raised by updates that target a row which does not exist.

    Lookups return None instead of raising.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a constraint rejects a write.

    Services translate this into the matching duplicate error kind: the
    pending-interest partial index, the (team, opportunity) application
    constraint and the one-company-per-user constraint.
    """

    def __init__(self, message: str, constraint: str = ""):
        super().__init__(message)
        self.constraint = constraint
