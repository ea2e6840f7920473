"""Relational persistence for the matching engine.

Example:
    >>> from liftout.persistence import init_database, get_session, TeamRepository
    >>> init_database("sqlite:///./data/liftout.db")
    >>> with get_session() as session:
    ...     team = TeamRepository(session).get("team-1")
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import (
    ApplicationRepository,
    CompanyRepository,
    CompanyUserRepository,
    ConversationRepository,
    InterestRepository,
    NotificationRepository,
    OpportunityRepository,
    SavedItemRepository,
    TeamRepository,
    UserRepository,
)

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "UserRepository",
    "CompanyRepository",
    "CompanyUserRepository",
    "TeamRepository",
    "OpportunityRepository",
    "ConversationRepository",
    "InterestRepository",
    "ApplicationRepository",
    "SavedItemRepository",
    "NotificationRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
