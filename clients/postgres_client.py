"""
PostgreSQL client with connection pooling and RLS shop isolation.

Uses psycopg2 with ThreadedConnectionPool. Shop isolation enforced via
PostgreSQL Row Level Security - automatically reads user and shop IDs from
contextvars and sets app.current_user_id / app.current_shop_id on each
connection.

All access goes through transaction(), which pins one connection, applies
the requested isolation level, and commits or rolls back as a unit.

Security: No shop context = see nothing (RLS blocks all rows). This is safe.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.user_context import _current_user_id, _current_shop_id

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False

Params = Tuple | Dict | None


def _convert_params(params: Params) -> Params:
    """Convert UUID objects to strings."""
    if params is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, tuple):
            return tuple(convert(v) for v in value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(params)


class Transaction:
    """
    Query interface bound to one open transaction.

    Nothing is committed until the enclosing PostgresClient.transaction()
    block exits cleanly.
    """

    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        self._cursor.execute(query, _convert_params(params))
        if self._cursor.description:
            return [dict(row) for row in self._cursor.fetchall()]
        return []

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """Execute query, return first value of first row or None."""
        row = self.execute_single(query, params)
        if row is None:
            return None
        return next(iter(row.values()), None)


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvars.

    Shop context is read from utils.user_context on each connection.
    - Shop context set → sees only that shop's data (RLS filtered)
    - No shop context → sees nothing (RLS blocks all rows)

    Usage:
        db = PostgresClient(database_url)

        with user_context(user_id, shop_id):
            with db.transaction() as tx:
                tx.execute("UPDATE invoices SET ...")
                tx.execute("UPDATE garment_services SET ...")
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()
        return self._connection_pools[self._database_url]

    @staticmethod
    def _apply_rls_context(conn) -> None:
        """Set RLS session variables from the contextvars."""
        user_id = _current_user_id.get()
        shop_id = _current_shop_id.get()

        with conn.cursor() as cur:
            # Empty string clears context; RLS policies cast with ::uuid so no rows match
            cur.execute(
                "SET app.current_user_id = %s",
                (str(user_id) if user_id is not None else "",),
            )
            cur.execute(
                "SET app.current_shop_id = %s",
                (str(shop_id) if shop_id is not None else "",),
            )

    @contextmanager
    def transaction(
        self,
        isolation_level: str = "SERIALIZABLE",
        readonly: bool = False,
    ) -> Iterator[Transaction]:
        """
        Run several statements as one atomic unit.

        Commits when the block exits normally, rolls back on any exception.
        Serialization failures surface as psycopg2 errors for the caller to
        translate and retry.

        Args:
            isolation_level: PostgreSQL isolation level for the transaction
            readonly: Open a READ ONLY transaction (snapshot reads)
        """
        pool = self._get_pool()
        conn = pool.getconn()
        if conn is None:
            raise RuntimeError("Could not get connection from pool")

        broken = False
        try:
            conn.set_session(isolation_level=isolation_level, readonly=readonly)
            self._apply_rls_context(conn)

            cursor = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield Transaction(cursor)
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                cursor.close()

        except psycopg2.InterfaceError:
            broken = True
            raise

        finally:
            if not broken:
                try:
                    conn.rollback()
                    conn.set_session(isolation_level="DEFAULT", readonly="DEFAULT")
                except psycopg2.Error:
                    logger.warning("Discarding connection that failed to reset session")
                    broken = True
            pool.putconn(conn, close=broken)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
