"""
Database configuration and session management for SQLAlchemy 2.0.

DatabaseManager owns the engine, the session factory and a thread-local
scoped session. The scoped session is the default connection of the
schema adapter: search_path statements and the request's queries share
one connection per thread. Every pool checkout re-applies the checking-out
flow's search_path (apply_search_path), so a connection released by one
tenant never serves another flow with that tenant's schema.

Environment:
    DATABASE_URL, DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW,
    DATABASE_POOL_TIMEOUT, DATABASE_POOL_RECYCLE, DATABASE_ECHO
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, scoped_session, sessionmaker

from tenantscope.scoping import install_tenant_scoping
from tenantscope.tenant_context import tenant

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class DatabaseManager:
    """A centralized manager for database connections and sessions."""

    def __init__(self):
        self.engine: Optional[Engine] = None
        self.SessionFactory: Optional[sessionmaker[Session]] = None
        self.Session: Optional[scoped_session] = None
        self._load_config()

    def _load_config(self):
        """Load database configuration from environment variables."""
        self.db_url = os.getenv("DATABASE_URL")
        self.pool_size = int(os.getenv("DATABASE_POOL_SIZE", "20"))
        self.max_overflow = int(os.getenv("DATABASE_MAX_OVERFLOW", "10"))
        self.pool_timeout = int(os.getenv("DATABASE_POOL_TIMEOUT", "30"))
        self.pool_recycle = int(os.getenv("DATABASE_POOL_RECYCLE", "3600"))
        self.echo = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    def connect(self, db_url: str = None):
        """
        Create the engine, session factory and scoped session.

        Args:
            db_url: Database URL (default: DATABASE_URL)
        """
        # Reload config in case environment vars changed after import
        self._load_config()
        if db_url:
            self.db_url = db_url
        if not self.db_url:
            raise ValueError("DATABASE_URL is not set. Please configure it in your environment.")

        engine_options = {'echo': self.echo, 'pool_pre_ping': True}
        if not self.db_url.startswith('sqlite'):
            engine_options.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
                pool_recycle=self.pool_recycle,
            )

        try:
            self.engine = create_engine(self.db_url, **engine_options)
            self.SessionFactory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
            install_tenant_scoping(self.SessionFactory)
            self.Session = scoped_session(self.SessionFactory)
            self._register_event_listeners()
            logger.info("Database engine created", extra={'url': self._masked_url()})
        except Exception as e:
            logger.error(f"Failed to create database engine: {e}")
            raise

    def _ensure_connected(self):
        if not self.SessionFactory:
            self.connect()

    def check_connection(self) -> bool:
        """
        Verify that a connection can be established to the database.
        Returns True on success, raises on failure.
        """
        self._ensure_connected()
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except OperationalError as e:
            logger.error(
                f"Database connection failed: {e}",
                extra={'url': self._masked_url()}
            )
            raise

    def get_session(self) -> Session:
        """Get a new database session."""
        self._ensure_connected()
        return self.SessionFactory()

    def scoped_session(self) -> Session:
        """Get the session bound to the current thread."""
        self._ensure_connected()
        return self.Session()

    def remove_scoped_session(self) -> None:
        """Close and discard the current thread's scoped session."""
        if self.Session is not None:
            self.Session.remove()

    def get_database_info(self) -> dict:
        """Get database connection information (for debugging)."""
        if not self.engine:
            return {"error": "Engine not initialized."}
        return {
            "url": self._masked_url(),
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "echo": self.echo,
        }

    def _masked_url(self) -> str:
        if not self.engine:
            return ""
        return self.engine.url.render_as_string(hide_password=True)

    def _register_event_listeners(self):
        """Register SQLAlchemy event listeners."""
        if not self.engine:
            return

        @event.listens_for(self.engine, "connect")
        def set_statement_timeout(dbapi_conn, connection_record):
            """Set statement timeout for new connections to prevent long-running queries."""
            if "postgresql" in self.db_url:
                cursor = dbapi_conn.cursor()
                try:
                    cursor.execute("SET statement_timeout = '30s'")
                finally:
                    cursor.close()

        @event.listens_for(self.engine, "checkout")
        def pin_search_path(dbapi_conn, connection_record, connection_proxy):
            """Give every checked-out connection the search_path of the flow checking it out."""
            apply_search_path(dbapi_conn, self.engine.dialect)


def apply_search_path(dbapi_conn, dialect) -> None:
    """
    Set the calling flow's tenant search_path on a raw DBAPI connection.

    A no-op unless tenantscope is configured with the schema strategy.
    Pooled connections keep the last SET they received, so this runs on
    every checkout: a connection released by one tenant's flow never
    reaches another flow with that tenant's path still set.
    """
    if not tenant.is_configured or tenant.configuration().strategy != 'schema':
        return
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(tenant.adapter.search_path_statement(dialect))
    finally:
        cursor.close()


# --- Global Database Manager Instance ---
db_manager = DatabaseManager()


# --- SQLAlchemy Base and Session Context ---

class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for providing a transactional database session.
    """
    session = db_manager.get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
