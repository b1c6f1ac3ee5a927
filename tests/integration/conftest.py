"""Integration test conftest: DB rollback fixtures.

Inherits the root conftest.py fixtures (db_session, test_user) and adds
integration-specific markers.

All tests in this directory use the transaction-rollback pattern against
a database migrated with alembic: real SQL executes, but nothing persists.
Run with MEALPLANNER_DB_TESTS=1.
"""

import pytest


@pytest.fixture(autouse=True)
def _mark_integration(request):
    """Auto-mark all tests in this directory as integration."""
    request.node.add_marker(pytest.mark.integration)
