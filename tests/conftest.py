# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import os

# Settings are read at import time; startup validation needs these present
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")

import pytest
from contextlib import ExitStack
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, Mock, patch
from typing import Generator

from main import create_app
from core.roles import Role
from dependencies.auth import CurrentUser, get_current_user


CHAIN_METHODS = (
    "select", "insert", "update", "upsert", "delete",
    "eq", "neq", "in_", "gte", "lte", "order", "range", "limit",
)


def table_mock(data=None, count=None):
    """A supabase query builder whose chain methods all return itself."""
    table = MagicMock()
    for name in CHAIN_METHODS:
        getattr(table, name).return_value = table
    table.execute.return_value = Mock(data=data if data is not None else [], count=count)
    return table


class FakeSupabase:
    """
    Stand-in for the supabase Client. Tests register per-table results;
    unknown tables answer with no rows.
    """

    def __init__(self):
        self.tables = {}
        self.client = MagicMock()
        self.client.table.side_effect = self._table

    def _table(self, name):
        if name not in self.tables:
            self.tables[name] = table_mock()
        return self.tables[name]

    def set(self, name, data=None, count=None):
        self.tables[name] = table_mock(data, count)
        return self.tables[name]

    def respond(self, name, *results):
        """Successive execute() calls on `name` return each data list in turn."""
        table = self._table(name)
        table.execute.side_effect = [Mock(data=r, count=None) for r in results]
        return table


@pytest.fixture(scope="function")
def app():
    """Create a test FastAPI application instance."""
    app = create_app()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def use_supabase(fake_supabase):
    """
    Patch get_supabase_client in the given modules to return the fake.
    Usage: use_supabase("routers.promo_codes", "core.partners")
    """
    stack = ExitStack()

    def _apply(*modules):
        for module in modules:
            stack.enter_context(
                patch(f"{module}.get_supabase_client", return_value=fake_supabase.client)
            )
        return fake_supabase

    yield _apply
    stack.close()


@pytest.fixture
def login_as(app):
    """Override get_current_user with the given user for the test's requests."""

    def _login(user: CurrentUser):
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login


@pytest.fixture
def mock_admin_user():
    return CurrentUser(id="admin-user-id", email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def mock_super_admin_user():
    return CurrentUser(id="super-user-id", email="super@example.com", role=Role.SUPER_ADMIN)


@pytest.fixture
def mock_partner_user():
    return CurrentUser(id="partner-user-id", email="partner@example.com", role=Role.PARTNER)


@pytest.fixture
def mock_driver_user():
    return CurrentUser(id="driver-user-id", email="driver@example.com", role=Role.DRIVER)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Reset the in-memory rate limiter before each test."""
    from core.rate_limiter import reset_rate_limits
    reset_rate_limits()
    yield
    reset_rate_limits()
