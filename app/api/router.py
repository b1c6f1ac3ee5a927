from fastapi import APIRouter

from app.api.v1 import internal, meal_plan_jobs, preferences

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(meal_plan_jobs.router)
api_router.include_router(preferences.router)
api_router.include_router(internal.router)
