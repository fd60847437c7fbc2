import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

from src.api import config

logger = logging.getLogger(__name__)


class Transaction:
    """Statements issued on one pooled connection inside a single transaction."""

    def __init__(self, conn) -> None:
        self._conn = conn

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement within the transaction. Returns affected rowcount."""
        with self._conn.cursor() as cur:
            cur.execute(query, params or [])
            return cur.rowcount


class Database:
    """
    Bounded PostgreSQL connection pool with query helpers.

    psycopg2's pool raises when it runs dry; a semaphore sized to the pool
    makes callers wait for a free connection instead.
    """

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 10) -> None:
        self._pool = ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, dsn=dsn)
        self._slots = threading.BoundedSemaphore(maxconn)

    @contextmanager
    def _get_conn(self):
        self._slots.acquire()
        try:
            conn = self._pool.getconn()
            try:
                yield conn
            finally:
                self._pool.putconn(conn)
        finally:
            self._slots.release()

    @staticmethod
    def _dict_cursor(conn):
        return conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    # PUBLIC_INTERFACE
    def fetch_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row as a dict, or None."""
        with self._get_conn() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                row = cur.fetchone()
                return dict(row) if row else None

    # PUBLIC_INTERFACE
    def fetch_all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Fetch all rows as dicts."""
        with self._get_conn() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                rows = cur.fetchall()
                return [dict(r) for r in rows]

    # PUBLIC_INTERFACE
    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """Execute a statement (INSERT/UPDATE/DELETE). Returns affected rowcount."""
        with self._get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params or [])
                affected = cur.rowcount
                conn.commit()
                return affected

    # PUBLIC_INTERFACE
    def execute_returning_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """Execute a statement with RETURNING and return the first row as dict."""
        with self._get_conn() as conn:
            with self._dict_cursor(conn) as cur:
                cur.execute(query, params or [])
                row = cur.fetchone()
                if not row:
                    conn.rollback()
                    raise RuntimeError("Expected one row returned, got none.")
                conn.commit()
                return dict(row)

    # PUBLIC_INTERFACE
    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run several statements on one connection atomically.

        Commits when the block exits normally, rolls back and re-raises on any
        exception. The connection goes back to the pool either way.
        """
        with self._get_conn() as conn:
            try:
                yield Transaction(conn)
            except Exception:
                conn.rollback()
                raise
            else:
                conn.commit()

    def close(self) -> None:
        self._pool.closeall()


_DB: Optional[Database] = None
_DB_LOCK = threading.Lock()


# PUBLIC_INTERFACE
def init_db(dsn: Optional[str] = None) -> Database:
    """Create the process-wide connection pool from configuration (idempotent)."""
    global _DB
    with _DB_LOCK:
        if _DB is None:
            _DB = Database(
                dsn or config.database_dsn(),
                minconn=config.pool_min_size(),
                maxconn=config.pool_max_size(),
            )
            logger.info("Database pool ready (max %d connections)", config.pool_max_size())
        return _DB


# PUBLIC_INTERFACE
def close_db() -> None:
    """Close every pooled connection; the next init_db() starts a fresh pool."""
    global _DB
    with _DB_LOCK:
        if _DB is not None:
            _DB.close()
            _DB = None
            logger.info("Database pool closed")


# PUBLIC_INTERFACE
def get_db() -> Database:
    """FastAPI dependency providing the process-wide Database."""
    return init_db()
