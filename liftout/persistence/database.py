"""Engine creation and transactional session management.

``init_database`` is called once at startup (or once per test); every engine
operation that mutates state does so inside ``get_session()``, so a failure at
any step rolls back the whole operation.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from liftout.logging import get_logger

from .exceptions import DatabaseConnectionError, DataIntegrityError, PersistenceError

_engine: Engine | None = None
_session_factory: sessionmaker | None = None

logger = get_logger(__name__, component="database")


def init_database(database_url: str) -> None:
    """Create the engine and session factory, then create missing tables.

    ``sqlite://`` (in-memory) URLs share a single connection so every session
    sees the same database. They are for tests only: the notification
    dispatcher's worker threads would write through that same connection, so
    the tests pair them with a synchronous executor. Use a file or server URL
    anywhere dispatch runs on a thread pool.

    Args:
        database_url: SQLAlchemy URL, e.g. ``sqlite:///./data/liftout.db``

    Raises:
        DatabaseConnectionError: If the URL is unusable or the store is unreachable
    """
    global _engine, _session_factory

    if not database_url or not isinstance(database_url, str):
        raise DatabaseConnectionError("Database URL must be a non-empty string")

    logger.info(
        "Initializing database",
        extra={"event": "database.initializing", "database_url": _redact_url(database_url)},
    )

    try:
        is_sqlite = database_url.startswith("sqlite")
        in_memory = is_sqlite and (database_url in ("sqlite://", "sqlite:///:memory:"))

        if is_sqlite and not in_memory:
            db_file = Path(database_url.replace("sqlite:///", "", 1))
            if not db_file.parent.exists():
                logger.info(f"Creating database directory: {db_file.parent}")
                db_file.parent.mkdir(parents=True, exist_ok=True)

        engine_kwargs = {"echo": False, "pool_pre_ping": True, "future": True}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        if in_memory:
            engine_kwargs["poolclass"] = StaticPool

        _engine = create_engine(database_url, **engine_kwargs)

        if is_sqlite:
            _configure_sqlite(_engine, wal=not in_memory)

        _validate_connection(_engine)

        _session_factory = sessionmaker(
            bind=_engine,
            autoflush=True,
            expire_on_commit=False,
            future=True,
        )

        from .schema import create_schema

        create_schema(_engine)

        logger.info(
            "Database initialized",
            extra={"event": "database.initialised", "database_url": _redact_url(database_url)},
        )

    except DatabaseConnectionError:
        raise
    except Exception as e:
        error_msg = f"Failed to initialize database: {e}"
        logger.error(error_msg, exc_info=True)
        raise DatabaseConnectionError(error_msg) from e


def _configure_sqlite(engine: Engine, wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Hide the password of a server URL; SQLite URLs are returned as-is."""
    if url.startswith("sqlite"):
        return url

    if "@" in url and ":" in url:
        credentials, _, host = url.rpartition("@")
        scheme, _, userinfo = credentials.partition("://")
        username = userinfo.split(":", 1)[0]
        return f"{scheme}://{username}:***@{host}"

    return url


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on any exception.

    Raises:
        DatabaseConnectionError: If init_database() has not been called
        DataIntegrityError: If a constraint rejects the commit
        PersistenceError: If the commit fails for any other store reason

    Example:
        >>> with get_session() as session:
        ...     InterestRepository(session).get("eoi-1")
    """
    if _session_factory is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_session()"
        )

    session = _session_factory()
    try:
        yield session
        try:
            session.commit()
        except IntegrityError as e:
            raise DataIntegrityError(f"Commit rejected by a constraint: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to commit transaction: {e}") from e
        logger.debug("Database session committed", extra={"event": "database.session.committed"})
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Database session rolled back: {e}",
            extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    if _engine is None:
        raise DatabaseConnectionError(
            "Database not initialized. Call init_database() before using get_engine()"
        )
    return _engine


def close_database() -> None:
    """Dispose of the engine. Safe to call when nothing was initialised."""
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Closing database connections", extra={"event": "database.closing"})
        _engine.dispose()
        _engine = None
        _session_factory = None
