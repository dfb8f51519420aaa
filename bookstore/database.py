"""
Database connection and session management.
Uses SQLAlchemy; MySQL through PyMySQL in deployment, SQLite in tests.
"""

import logging
import socket
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from bookstore.config import settings, get_database_url

logger = logging.getLogger(__name__)


def _serialize_sqlite_writes(engine: Engine) -> None:
    # SQLite has no row locks: take the database write lock when the
    # transaction begins so concurrent stock checks cannot interleave.
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for ``url`` (defaults to the configured database)"""
    url = url or get_database_url()
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.db_connect_timeout,
            },
        )
        _serialize_sqlite_writes(engine)
        return engine

    # - pool_pre_ping: validate connections before using them, recycling dead ones
    # - pool_recycle: proactively recycle connections before MySQL wait_timeout
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


def get_db():
    """Dependency function that provides a database session per request."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def wait_for_tcp(
    host: str, port: int, timeout: int = 60, interval: float = 1.0
) -> bool:
    """Wait until a TCP port at host:port is accepting connections."""
    end = time.time() + timeout
    while time.time() < end:
        try:
            with socket.create_connection((host, port), timeout=2):
                logger.info(f"Connection to {host}:{port} succeeded")
                return True
        except OSError:
            time.sleep(interval)
    logger.error(f"Timeout waiting for {host}:{port}")
    return False


def wait_for_database(db_url: str, timeout: int = 60) -> bool:
    """Wait for the server behind a SQLAlchemy URL; file databases are always ready."""
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        return True
    host = url.host or "localhost"
    port = url.port or 3306
    logger.info(f"Waiting for database at {host}:{port}")
    return wait_for_tcp(host, port, timeout=timeout)
