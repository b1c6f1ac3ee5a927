from app.domain.cron_tick_operations import cron_tick_ops
from app.domain.meal_plan_job_operations import meal_plan_job_ops
from app.domain.meal_plan_operations import meal_plan_ops
from app.domain.notification_operations import notification_ops
from app.domain.preferences_operations import preferences_ops

__all__ = [
    "meal_plan_job_ops",
    "meal_plan_ops",
    "preferences_ops",
    "notification_ops",
    "cron_tick_ops",
]
