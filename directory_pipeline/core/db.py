"""Database helpers for the pipeline commands."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import extras, pool

from directory_pipeline.core.config import get_settings
from directory_pipeline.core.errors import ConfigurationError, StoreError

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise ConfigurationError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def fetch_all(query: str, params: Optional[Any] = None) -> List[Dict[str, Any]]:
    """Run a read query and return every row as a dict."""
    try:
        with get_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
    except psycopg2.Error as exc:
        raise StoreError.from_exception(exc) from exc
    return [dict(row) for row in rows]


def fetch_one(query: str, params: Optional[Any] = None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(query, params)
    return rows[0] if rows else None


def execute(query: Any, params: Optional[Any] = None) -> int:
    """Run a single write statement in its own transaction and return the row count."""
    with get_connection() as conn:
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rowcount = cur.rowcount
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            raise StoreError.from_exception(exc) from exc
    return rowcount
