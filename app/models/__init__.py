from app.models.cron_tick import CronTick
from app.models.inbox_notification import InboxNotification, NotificationType
from app.models.meal_plan import MealPlan, MealPlanStatus
from app.models.meal_plan_job import JobStatus, MealPlanGenerationJob
from app.models.user import User
from app.models.user_preferences import UserPreferences

__all__ = [
    "User",
    "UserPreferences",
    "MealPlanGenerationJob",
    "JobStatus",
    "MealPlan",
    "MealPlanStatus",
    "InboxNotification",
    "NotificationType",
    "CronTick",
]
