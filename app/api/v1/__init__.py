from app.api.v1 import internal, meal_plan_jobs, preferences

__all__ = [
    "meal_plan_jobs",
    "preferences",
    "internal",
]
