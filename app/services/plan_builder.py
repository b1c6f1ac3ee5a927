"""Client for the external plan builder service.

The plan builder composes the actual meal plan (recipes, quantities, diet
rules) and persists it in meal_plans. This service only asks for a plan
and receives its id back.

Uses the plan builder's REST API directly via httpx.
"""

import logging
import uuid as uuid_pkg
from typing import Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.schemas.meal_plan_jobs import PlanRequest

logger = logging.getLogger(__name__)

PLAN_BUILDER_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}

UNAVAILABLE = "PLAN_BUILDER_UNAVAILABLE"
BAD_RESPONSE = "PLAN_BUILDER_BAD_RESPONSE"


class PlanBuilderError(Exception):
    """Plan generation failed.

    ``code`` is a short machine-readable code and ``message`` is safe to
    store on the job and show to the user.
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class PlanBuilder(Protocol):
    async def create_plan_for_user(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        request: PlanRequest,
    ) -> uuid_pkg.UUID: ...


class HttpPlanBuilder:
    """Generate plans by calling the plan builder's POST /plans endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return (self._base_url if self._base_url is not None else settings.plan_builder_url).rstrip("/")

    async def create_plan_for_user(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        request: PlanRequest,
    ) -> uuid_pkg.UUID:
        """
        Ask the plan builder for a new plan and return its id.

        The plan builder writes the plan itself, so ``db`` is unused here;
        in-process builders use it to write in the caller's transaction.

        Raises:
            PlanBuilderError: on any non-success outcome.
        """
        if not self.base_url:
            logger.warning("[plan-builder] Skipped (PLAN_BUILDER_URL not configured)")
            raise PlanBuilderError(UNAVAILABLE, "Plan builder is not configured")

        payload = {
            "user_id": str(user_id),
            **request.model_dump(mode="json"),
        }
        headers = dict(PLAN_BUILDER_HEADERS)
        api_key = self._api_key if self._api_key is not None else settings.plan_builder_api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        timeout = self._timeout if self._timeout is not None else settings.plan_builder_timeout_seconds
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/plans", json=payload, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"[plan-builder] Request failed for user {user_id}: {e}")
            raise PlanBuilderError(UNAVAILABLE, "Plan builder is unreachable") from e

        if response.is_error:
            raise _error_from_response(response)

        try:
            return uuid_pkg.UUID(str(response.json()["plan_id"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"[plan-builder] Unexpected response body: {response.text[:200]}")
            raise PlanBuilderError(BAD_RESPONSE, "Plan builder returned an invalid response") from e


def _error_from_response(response: httpx.Response) -> PlanBuilderError:
    """Map an error response ``{code, message}`` onto a PlanBuilderError."""
    logger.error(f"[plan-builder] HTTP {response.status_code}: {response.text[:200]}")
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("code"):
        return PlanBuilderError(str(body["code"]), str(body.get("message") or "Plan generation failed"))
    if response.status_code >= 500:
        return PlanBuilderError(UNAVAILABLE, "Plan builder is unavailable")
    return PlanBuilderError(f"PLAN_BUILDER_HTTP_{response.status_code}", "Plan generation failed")


plan_builder: PlanBuilder = HttpPlanBuilder()
