"""Tests for PostgresClient - pooled transactions with RLS shop context (pool mocked)."""

from unittest.mock import MagicMock, patch
from uuid import UUID, uuid4

import psycopg2
import psycopg2.extras
import pytest

from clients.postgres_client import PostgresClient, Transaction
from utils.user_context import user_context

TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_SHOP_ID = UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture
def connection():
    """Mock connection with separate RLS and query cursors."""
    conn = MagicMock(name="connection")
    rls_cursor = MagicMock(name="rls_cursor")
    query_cursor = MagicMock(name="query_cursor")

    def cursor(*args, **kwargs):
        if kwargs.get("cursor_factory") is psycopg2.extras.RealDictCursor:
            return query_cursor
        ctx = MagicMock()
        ctx.__enter__.return_value = rls_cursor
        return ctx

    conn.cursor.side_effect = cursor
    conn.rls_cursor = rls_cursor
    conn.query_cursor = query_cursor
    return conn


@pytest.fixture
def pool(connection):
    with patch("clients.postgres_client.psycopg2.pool.ThreadedConnectionPool") as pool_cls, \
            patch("clients.postgres_client.psycopg2.extras.register_default_jsonb"):
        pool = pool_cls.return_value
        pool.getconn.return_value = connection
        yield pool
    PostgresClient.close_all_pools()


@pytest.fixture
def db(pool):
    return PostgresClient(f"postgresql://test/{uuid4()}")


class TestPool:

    def test_pool_shared_per_url(self, pool):
        """Clients on the same URL share one pool."""
        url = f"postgresql://test/{uuid4()}"
        a = PostgresClient(url)
        b = PostgresClient(url)
        assert a._get_pool() is b._get_pool()

    def test_close_removes_pool(self, db, pool):
        db.close()
        pool.closeall.assert_called_once()


class TestTransaction:
    """Commit, rollback, and connection return."""

    def test_commits_on_clean_exit(self, db, pool, connection):
        with db.transaction() as tx:
            assert isinstance(tx, Transaction)

        connection.commit.assert_called_once()
        pool.putconn.assert_called_once_with(connection, close=False)

    def test_rolls_back_and_reraises(self, db, pool, connection):
        with pytest.raises(ValueError):
            with db.transaction():
                raise ValueError("boom")

        connection.commit.assert_not_called()
        connection.rollback.assert_called()
        pool.putconn.assert_called_once_with(connection, close=False)

    def test_serializable_by_default(self, db, connection):
        with db.transaction():
            pass

        connection.set_session.assert_any_call(isolation_level="SERIALIZABLE", readonly=False)

    def test_readonly_snapshot(self, db, connection):
        with db.transaction(isolation_level="REPEATABLE READ", readonly=True):
            pass

        connection.set_session.assert_any_call(isolation_level="REPEATABLE READ", readonly=True)

    def test_session_reset_before_return(self, db, connection):
        """Pooled connections go back with default session settings."""
        with db.transaction():
            pass

        assert connection.set_session.call_args_list[-1].kwargs == {
            "isolation_level": "DEFAULT", "readonly": "DEFAULT",
        }

    def test_broken_connection_discarded(self, db, pool, connection):
        """InterfaceError means the connection is dead; close it instead of pooling it."""
        connection.commit.side_effect = psycopg2.InterfaceError("connection already closed")

        with pytest.raises(psycopg2.InterfaceError):
            with db.transaction():
                pass

        pool.putconn.assert_called_once_with(connection, close=True)

    def test_failed_reset_discards_connection(self, db, pool, connection):
        connection.set_session.side_effect = [None, psycopg2.OperationalError("gone")]

        with db.transaction():
            pass

        pool.putconn.assert_called_once_with(connection, close=True)


class TestRLSContext:
    """Row Level Security context management."""

    def test_sets_user_and_shop_from_contextvars(self, db, connection):
        with user_context(TEST_USER_ID, TEST_SHOP_ID):
            with db.transaction():
                pass

        connection.rls_cursor.execute.assert_any_call(
            "SET app.current_user_id = %s", (str(TEST_USER_ID),)
        )
        connection.rls_cursor.execute.assert_any_call(
            "SET app.current_shop_id = %s", (str(TEST_SHOP_ID),)
        )

    def test_clears_context_without_user(self, db, connection):
        """No context sets empty strings, which RLS policies match to no rows."""
        with db.transaction():
            pass

        connection.rls_cursor.execute.assert_any_call("SET app.current_shop_id = %s", ("",))


class TestExecuteMethods:
    """Query execution through a Transaction."""

    def test_execute_returns_list_of_dicts(self, db, connection):
        cursor = connection.query_cursor
        cursor.description = [("num",), ("word",)]
        cursor.fetchall.return_value = [{"num": 1, "word": "hello"}]

        with db.transaction() as tx:
            assert tx.execute("SELECT 1 as num, 'hello' as word") == [{"num": 1, "word": "hello"}]

    def test_execute_without_result_set_returns_empty_list(self, db, connection):
        connection.query_cursor.description = None

        with db.transaction() as tx:
            assert tx.execute("UPDATE garments SET stage = 'New'") == []

    def test_uuid_params_converted(self, db, connection):
        """UUIDs (also inside lists, for ANY(%s::uuid[])) are sent as strings."""
        connection.query_cursor.description = None
        ids = [uuid4(), uuid4()]

        with db.transaction() as tx:
            tx.execute("SELECT * FROM garment_services WHERE id = ANY(%s::uuid[])", (ids,))

        connection.query_cursor.execute.assert_called_once_with(
            "SELECT * FROM garment_services WHERE id = ANY(%s::uuid[])",
            ([str(i) for i in ids],),
        )

    def test_execute_single_no_rows_returns_none(self, db, connection):
        connection.query_cursor.description = [("id",)]
        connection.query_cursor.fetchall.return_value = []

        with db.transaction() as tx:
            assert tx.execute_single("SELECT id FROM invoices WHERE false") is None

    def test_execute_scalar_returns_first_value(self, db, connection):
        connection.query_cursor.description = [("invoice_number",)]
        connection.query_cursor.fetchall.return_value = [{"invoice_number": "INV-20261018-0003"}]

        with db.transaction() as tx:
            assert tx.execute_scalar("SELECT invoice_number FROM invoices") == "INV-20261018-0003"
