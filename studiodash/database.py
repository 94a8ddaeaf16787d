"""
StudioDash Database Module
==========================

Database connectivity for StudioDash: table definitions, engine management,
health checks and the retry-with-backoff helper used by every repository.
Supports SQLite (development, tests) and PostgreSQL.

Author: StudioDash Development Team
License: MIT
"""

import asyncio
import inspect
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Generator, Optional, TypeVar, Union

from sqlalchemy import (
    create_engine, Engine, Connection, MetaData, Table, Column, String, Text,
    DateTime, Boolean, Integer, Float, ForeignKey, Index, UniqueConstraint,
    event, exc, text
)
from sqlalchemy.pool import StaticPool

from .config import DatabaseSettings, RetrySettings

T = TypeVar("T")


# ==================== LOGGING SETUP ====================

logger = logging.getLogger(__name__)


def setup_database_logging(echo_queries: bool = False) -> None:
    """
    Configure SQLAlchemy logging.

    Args:
        echo_queries: Whether to log SQL statements
    """
    logging.getLogger('sqlalchemy.engine').setLevel(logging.INFO if echo_queries else logging.WARNING)
    logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)


# ==================== CUSTOM EXCEPTIONS ====================

class DatabaseError(Exception):
    """Base database exception."""
    pass


# ==================== TABLE DEFINITIONS ====================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


metadata = MetaData()


def _timestamps():
    return (
        Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    )


users = Table(
    "users", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("role", String(50), nullable=False, default="user"),
    *_timestamps(),
)

projects = Table(
    "projects", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("type", String(50), nullable=False),
    Column("status", String(50), nullable=False, default="active"),
    Column("start_date", DateTime(timezone=True), nullable=False),
    Column("end_date", DateTime(timezone=True)),
    Column("owner_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    *_timestamps(),
    Index("ix_projects_owner_id", "owner_id"),
    Index("ix_projects_status", "status"),
)

project_members = Table(
    "project_members", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("project_id", String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("role", String(50), nullable=False, default="member"),
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    UniqueConstraint("user_id", "project_id", name="uq_project_members_user_project"),
)

tasks = Table(
    "tasks", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("status", String(50), nullable=False, default="todo"),
    Column("priority", String(50), nullable=False, default="medium"),
    Column("due_date", DateTime(timezone=True)),
    Column("project_id", String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
    Column("assignee_id", String(36), ForeignKey("users.id", ondelete="SET NULL")),
    *_timestamps(),
    Index("ix_tasks_project_id", "project_id"),
    Index("ix_tasks_assignee_id", "assignee_id"),
)

expenses = Table(
    "expenses", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("amount", Float, nullable=False),
    Column("date", DateTime(timezone=True), nullable=False),
    Column("category", String(100), nullable=False),
    Column("invoice_number", String(100)),
    Column("paid", Boolean, nullable=False, default=False),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("project_id", String(36), ForeignKey("projects.id", ondelete="SET NULL")),
    *_timestamps(),
    Index("ix_expenses_user_id", "user_id"),
)

file_uploads = Table(
    "file_uploads", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(255), nullable=False),
    Column("type", String(100), nullable=False),
    Column("size", Integer, nullable=False),
    Column("url", Text, nullable=False),
    Column("google_drive_id", String(255), unique=True),
    Column("uploader_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("project_id", String(36), ForeignKey("projects.id", ondelete="SET NULL")),
    Column("storage_path", Text),
    Column("storage_bucket", String(255)),
    *_timestamps(),
    Index("ix_file_uploads_uploader_id", "uploader_id"),
)

notes = Table(
    "notes", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("title", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("is_public", Boolean, nullable=False, default=False),
    Column("author_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("project_id", String(36), ForeignKey("projects.id", ondelete="SET NULL")),
    *_timestamps(),
    Index("ix_notes_author_id", "author_id"),
)


# ==================== RETRY WITH BACKOFF ====================

# Lowercase message fragments of errors worth retrying
TRANSIENT_ERROR_MARKERS = (
    "connection",
    "timeout",
    "temporarily unavailable",
    "too many clients",
)


def is_transient_error(error: BaseException) -> bool:
    """
    Classify an error as transient (worth retrying).

    Typed driver errors are checked first; untyped errors fall back to a
    case-insensitive message match.
    """
    if isinstance(error, (exc.DisconnectionError, exc.TimeoutError, ConnectionError, TimeoutError)):
        return True
    if isinstance(error, exc.StatementError):
        if getattr(error, "connection_invalidated", False):
            return True
        # The wrapper's message embeds the SQL and bound parameters; only the
        # driver error underneath says anything about the failure
        if error.orig is None:
            return False
        return is_transient_error(error.orig)

    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


async def retry_operation(
    operation: Callable[[], Union[T, Awaitable[T]]],
    max_retries: int = 3,
    initial_delay: float = 0.1,
) -> T:
    """
    Run an operation, retrying transient failures with exponential backoff.

    Args:
        operation: Zero-argument callable, sync or async
        max_retries: Total number of attempts
        initial_delay: Delay in seconds before the second attempt; doubles each time

    Returns:
        The operation's result

    Raises:
        ValueError: If max_retries is less than 1
        Exception: The first non-transient error, or the last error once
            attempts are exhausted
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(max_retries):
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            if not is_transient_error(e) or attempt == max_retries - 1:
                raise
            delay = initial_delay * 2 ** attempt
            logger.warning(
                f"Database operation failed (attempt {attempt + 1}/{max_retries}), "
                f"retrying in {delay:.3f}s: {e}"
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")


# ==================== DATABASE MANAGER ====================

class DatabaseManager:
    """
    Owns the SQLAlchemy engine and hands out connections.
    """

    def __init__(self, settings: DatabaseSettings, retry: Optional[RetrySettings] = None):
        """
        Initialize the database manager.

        Args:
            settings: Database configuration settings
            retry: Retry policy applied by ``run``
        """
        self.settings = settings
        self.retry = retry or RetrySettings()
        self.engine: Optional[Engine] = None
        self._initialized = False

        setup_database_logging(echo_queries=settings.echo_queries)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Create the engine and verify connectivity.

        Raises:
            DatabaseError: If initialization fails
        """
        if self._initialized:
            logger.warning("Database manager already initialized")
            return

        try:
            self.engine = create_engine(self.settings.url, **self._engine_kwargs())
            if self.settings.is_sqlite:
                event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))

            self._initialized = True
            logger.info(f"Database manager initialized ({self.engine.dialect.name})")

        except Exception as e:
            logger.error(f"Failed to initialize database manager: {e}")
            if self.engine is not None:
                self.engine.dispose()
                self.engine = None
            raise DatabaseError(f"Database initialization failed: {e}") from e

    def _engine_kwargs(self) -> dict:
        kwargs: dict = {"echo": self.settings.echo_queries}

        if self.settings.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.settings.is_memory:
                # One shared connection, otherwise every checkout sees an empty database
                kwargs["poolclass"] = StaticPool
        else:
            kwargs.update(
                pool_size=self.settings.pool_size,
                max_overflow=self.settings.max_overflow,
                pool_timeout=self.settings.pool_timeout,
                pool_recycle=self.settings.pool_recycle,
                pool_pre_ping=True,
            )

        return kwargs

    def _require_engine(self) -> Engine:
        if not self._initialized or self.engine is None:
            raise RuntimeError("Database manager not initialized")
        return self.engine

    def create_tables(self) -> None:
        metadata.create_all(self._require_engine())
        logger.info("Database tables created")

    def drop_tables(self) -> None:
        metadata.drop_all(self._require_engine())
        logger.info("Database tables dropped")

    @contextmanager
    def connect(self) -> Generator[Connection, None, None]:
        """Connection without an explicit transaction (reads)."""
        with self._require_engine().connect() as connection:
            yield connection

    @contextmanager
    def begin(self) -> Generator[Connection, None, None]:
        """Connection inside a transaction, committed on success and rolled back on error."""
        with self._require_engine().begin() as connection:
            yield connection

    async def run(self, operation: Callable[[], Union[T, Awaitable[T]]]) -> T:
        """Run an operation under the configured retry policy."""
        return await retry_operation(
            operation,
            max_retries=self.retry.max_retries,
            initial_delay=self.retry.initial_delay,
        )

    def ping(self) -> None:
        """Execute ``SELECT 1``; raises on failure."""
        with self.connect() as connection:
            connection.execute(text("SELECT 1"))

    def health_check(self) -> bool:
        """Single connectivity probe without retries."""
        try:
            self.ping()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database engine disposed")
        self.engine = None
        self._initialized = False

    def __enter__(self):
        if not self._initialized:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ==================== UTILITY FUNCTIONS ====================

def init_database(
    settings: DatabaseSettings,
    retry: Optional[RetrySettings] = None,
    create_tables: bool = True,
) -> DatabaseManager:
    """
    Create and initialize a database manager.

    Args:
        settings: Database configuration settings
        retry: Retry policy for repository operations
        create_tables: Whether to create missing tables

    Returns:
        Initialized DatabaseManager
    """
    manager = DatabaseManager(settings, retry)
    manager.initialize()

    if create_tables:
        manager.create_tables()

    return manager


async def check_database_health(manager: DatabaseManager) -> bool:
    """
    Check database availability with ``SELECT 1`` under the retry policy.

    Returns:
        True if the database answered, False otherwise (the failure is logged)
    """
    try:
        await manager.run(manager.ping)
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
