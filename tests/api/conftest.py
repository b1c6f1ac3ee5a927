"""API test fixtures: HTTP clients over the ASGI app.

The job services are patched per test, so these clients never need a
database: every session dependency yields the same mock session.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from tests.helpers.mock_factories import make_mock_session, make_mock_user


@pytest.fixture
def current_user():
    return make_mock_user()


@pytest.fixture
def mock_db():
    return make_mock_session()


@pytest.fixture
async def api_client(current_user, mock_db):
    """HTTP client authenticated as current_user."""
    from app.api.deps.auth import get_current_user, get_db_with_rls
    from app.core.database import get_db, get_direct_db
    from app.main import app

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_db_with_rls] = override_db
    app.dependency_overrides[get_direct_db] = override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", follow_redirects=True
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def unauth_client(mock_db):
    """HTTP client without credentials; real auth dependency runs."""
    from app.core.database import get_db
    from app.main import app

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", follow_redirects=True
    ) as client:
        yield client

    app.dependency_overrides.clear()
