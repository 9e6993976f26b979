"""Tests for utils/user_context.py - user and shop propagation via contextvars."""

from uuid import uuid4

import pytest

from utils.user_context import (
    get_current_user_id,
    get_current_shop_id,
    set_current_user,
    clear_current_user,
    user_context,
)


class TestGetters:
    """Fail-fast getters."""

    def test_user_raises_without_set(self):
        """Must raise RuntimeError when no context is set."""
        clear_current_user()
        with pytest.raises(RuntimeError, match="No user context"):
            get_current_user_id()

    def test_shop_raises_without_set(self):
        clear_current_user()
        with pytest.raises(RuntimeError, match="No shop context"):
            get_current_shop_id()


class TestSetAndClear:
    """Tests for set_current_user() and clear_current_user()."""

    def test_set_then_get_returns_both(self):
        """Setting then getting returns the same user and shop."""
        user_id, shop_id = uuid4(), uuid4()
        set_current_user(user_id, shop_id)
        assert get_current_user_id() == user_id
        assert get_current_shop_id() == shop_id
        clear_current_user()

    def test_clear_then_get_raises(self):
        """Clearing then getting should raise RuntimeError."""
        set_current_user(uuid4(), uuid4())
        clear_current_user()
        with pytest.raises(RuntimeError):
            get_current_shop_id()


class TestUserContextManager:
    """Tests for user_context() context manager."""

    def test_sets_and_clears(self):
        """Context manager should set inside, clear after."""
        clear_current_user()
        user_id, shop_id = uuid4(), uuid4()

        with user_context(user_id, shop_id):
            assert get_current_user_id() == user_id
            assert get_current_shop_id() == shop_id

        with pytest.raises(RuntimeError):
            get_current_user_id()

    def test_restores_previous(self):
        """Nested context managers should restore outer context."""
        outer = (uuid4(), uuid4())
        inner = (uuid4(), uuid4())

        with user_context(*outer):
            with user_context(*inner):
                assert get_current_shop_id() == inner[1]

            assert get_current_user_id() == outer[0]
            assert get_current_shop_id() == outer[1]

    def test_clears_on_exception(self):
        """Context should be cleared even if exception is raised."""
        clear_current_user()

        with pytest.raises(ValueError):
            with user_context(uuid4(), uuid4()):
                raise ValueError("test exception")

        with pytest.raises(RuntimeError):
            get_current_shop_id()
