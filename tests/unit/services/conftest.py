"""Fixtures for meal plan job service tests.

The job store is swapped for an in-memory fake everywhere the services
look it up; the session is a mock whose commit/rollback calls can be
asserted on.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from tests.helpers.fake_job_store import FakeJobStore
from tests.helpers.mock_factories import make_mock_session


@pytest.fixture
def db():
    return make_mock_session()


@pytest.fixture
def job_store():
    store = FakeJobStore()
    with (
        patch("app.services.meal_plan_jobs.claims.meal_plan_job_ops", store),
        patch("app.services.meal_plan_jobs.runner.meal_plan_job_ops", store),
        patch("app.services.meal_plan_jobs.scheduling.meal_plan_job_ops", store),
    ):
        yield store


@pytest.fixture
def notify():
    """Replace the notification helpers so job tests can assert on them."""
    with (
        patch(
            "app.services.meal_plan_jobs.notifications.notify_generation_failed",
            new_callable=AsyncMock,
            return_value=True,
        ) as failed,
        patch(
            "app.services.meal_plan_jobs.notifications.notify_plan_ready",
            new_callable=AsyncMock,
            return_value=True,
        ) as ready,
    ):
        yield SimpleNamespace(failed=failed, ready=ready)
