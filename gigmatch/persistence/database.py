"""Database connection and session management.

A ``Database`` value owns one engine and one session factory. It is created
once at startup and passed to every component that needs the store.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gigmatch.logging import get_logger

from .exceptions import DatabaseConnectionError, StoreUnavailable

logger = get_logger(__name__, component="database")


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or database_url.endswith(
        ":memory:"
    )


class Database:
    """Engine plus session factory for one database URL.

    Example:
        >>> db = Database("sqlite:///./data/gigmatch.db")
        >>> db.create_schema()
        >>> with db.session() as session:
        ...     repo = ListingRepository(session)
    """

    def __init__(self, database_url: str, create_schema: bool = True):
        """Create the engine, validate the connection and optionally the schema.

        Args:
            database_url: SQLAlchemy URL (e.g. "sqlite:///./data/gigmatch.db")
            create_schema: Create missing tables on startup

        Raises:
            DatabaseConnectionError: If initialization fails
        """
        if not database_url or not isinstance(database_url, str):
            raise DatabaseConnectionError("Database URL must be a non-empty string")

        self.url = database_url
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

        logger.info(
            "Initializing database",
            extra={
                "event": "database.initializing",
                "database_url": _redact_url(database_url),
            },
        )

        try:
            self.engine = self._create_engine(database_url)
            _validate_connection(self.engine)
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=True,
                expire_on_commit=False,
            )
            if create_schema:
                self.create_schema()
        except DatabaseConnectionError:
            raise
        except Exception as e:
            error_msg = f"Failed to initialize database: {e}"
            logger.error(error_msg, exc_info=True)
            raise DatabaseConnectionError(error_msg) from e

        logger.info(
            "Database initialized successfully",
            extra={
                "event": "database.initialised",
                "database_url": _redact_url(database_url),
                "dialect": self.dialect,
            },
        )

    @staticmethod
    def _create_engine(database_url: str) -> Engine:
        if not database_url.startswith("sqlite"):
            return create_engine(database_url, pool_pre_ping=True)

        if _is_memory_url(database_url):
            # One shared connection, otherwise every session sees an empty db
            engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            _configure_sqlite(engine, wal=False)
            return engine

        db_file = Path(database_url.replace("sqlite:///", "", 1))
        if not db_file.parent.exists():
            logger.info(f"Creating database directory: {db_file.parent}")
            db_file.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _configure_sqlite(engine, wal=True)
        return engine

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name if self.engine is not None else "unknown"

    def create_schema(self) -> None:
        from .schema import create_schema

        create_schema(self._require_engine())

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a session with automatic transaction management.

        Commits on successful exit, rolls back on exception and always closes.

        Raises:
            DatabaseConnectionError: If the database has been closed
        """
        if self._session_factory is None:
            raise DatabaseConnectionError("Database is closed")

        session = self._session_factory()
        try:
            yield session
            session.commit()
            logger.debug(
                "Database session committed",
                extra={"event": "database.session.committed"},
            )
        except Exception as e:
            session.rollback()
            logger.warning(
                f"Database session rolled back due to exception: {e}",
                extra={
                    "event": "database.session.rolled_back",
                    "error_type": type(e).__name__,
                },
            )
            if isinstance(e, SQLAlchemyError):
                raise StoreUnavailable(f"Database transaction failed: {e}") from e
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of pooled connections."""
        if self.engine is not None:
            logger.info("Closing database connections")
            self.engine.dispose()
            self.engine = None
            self._session_factory = None

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise DatabaseConnectionError("Database is closed")
        return self.engine


def _configure_sqlite(engine: Engine, wal: bool) -> None:
    """Enable foreign keys (and WAL for file databases) on every connection."""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def _validate_connection(engine: Engine) -> None:
    """Run ``SELECT 1`` against the engine.

    Raises:
        DatabaseConnectionError: If connection test fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.debug("Database connection validated successfully")
    except Exception as e:
        raise DatabaseConnectionError(f"Failed to validate database connection: {e}") from e


def _redact_url(url: str) -> str:
    """Redact the password from a database URL for logging.

    Example:
        >>> _redact_url("postgresql://app:secret@db:5432/gigs")
        'postgresql://app:***@db:5432/gigs'
    """
    if url.startswith("sqlite"):
        return url

    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        credentials, host = rest.rsplit("@", 1)
        username = credentials.split(":", 1)[0]
        return f"{scheme}://{username}:***@{host}"

    return url
