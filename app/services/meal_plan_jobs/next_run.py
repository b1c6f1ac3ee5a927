"""Next-run calculation for weekly meal plan generation.

A user's plan for the coming week (Monday start) is generated a number of
hours before their shopping moment: shopping day at the configured wall
clock time in the schedule timezone. All arithmetic on civil dates happens
in that timezone; the resulting instant is returned in UTC.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import settings
from app.models.user_preferences import LEAD_TIME_HOURS_OPTIONS, UserPreferences
from app.schemas.meal_plan_jobs import DEFAULT_DIET_KEY

# Iterations of the wall-clock correction; one per possible offset change
MAX_ZONE_CORRECTIONS = 2


@dataclass(frozen=True)
class SchedulePreferences:
    shopping_day: int
    lead_time_hours: int
    diet_key: str


@dataclass(frozen=True)
class NextRun:
    week_start: date
    shopping_date: date
    scheduled_for: datetime


def resolve_schedule_preferences(prefs: UserPreferences | None) -> SchedulePreferences:
    """Read the schedule fields from a preferences row, falling back to defaults.

    Missing rows and out-of-range values both fall back silently.
    """
    shopping_day = prefs.shopping_day if prefs is not None else None
    if not isinstance(shopping_day, int) or not 0 <= shopping_day <= 6:
        shopping_day = settings.default_shopping_day

    lead_time = prefs.meal_plan_lead_time_hours if prefs is not None else None
    if lead_time not in LEAD_TIME_HOURS_OPTIONS:
        lead_time = settings.default_lead_time_hours

    diet_key = (prefs.diet_key if prefs is not None else None) or DEFAULT_DIET_KEY

    return SchedulePreferences(
        shopping_day=shopping_day,
        lead_time_hours=lead_time,  # type: ignore[arg-type]
        diet_key=diet_key,
    )


def next_monday(today: date) -> date:
    """The next Monday strictly after ``today`` (a Monday yields the following one)."""
    days_ahead = (7 - today.weekday()) % 7
    return today + timedelta(days=days_ahead or 7)


def shopping_date_for_week(week_start: date, shopping_day: int) -> date:
    """Civil date of the shopping day for a Monday-start week.

    shopping_day counts 0=Sunday … 6=Saturday, so Sunday lands on the day
    before ``week_start``.
    """
    return week_start + timedelta(days=shopping_day - 1)


def parse_wall_clock(value: str) -> tuple[int, int]:
    """Parse an ``HH:MM`` string."""
    hour_str, minute_str = value.split(":", 1)
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid wall clock time: {value!r}")
    return hour, minute


def wall_clock_to_utc(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    """
    Convert a civil date and wall clock time in ``tz`` to a UTC instant.

    Starts from the same fields read as UTC, looks at what wall clock that
    instant shows in ``tz`` and shifts by the difference. A second pass
    settles the case where the first shift crossed an offset change.
    """
    desired = datetime(day.year, day.month, day.day, hour, minute)
    candidate = desired.replace(tzinfo=UTC)
    for _ in range(MAX_ZONE_CORRECTIONS):
        observed = candidate.astimezone(tz).replace(tzinfo=None, second=0, microsecond=0)
        delta_minutes = round((desired - observed).total_seconds() / 60)
        if delta_minutes == 0:
            break
        candidate += timedelta(minutes=delta_minutes)
    return candidate


def compute_next_run(
    now: datetime,
    prefs: SchedulePreferences,
    timezone_name: str | None = None,
    shopping_time: str | None = None,
) -> NextRun:
    """Compute the week to plan and the instant its generation job is due."""
    tz = ZoneInfo(timezone_name or settings.schedule_timezone)
    hour, minute = parse_wall_clock(shopping_time or settings.shopping_time)

    today = now.astimezone(tz).date()
    week_start = next_monday(today)
    shopping_date = shopping_date_for_week(week_start, prefs.shopping_day)
    shopping_at = wall_clock_to_utc(shopping_date, hour, minute, tz)

    return NextRun(
        week_start=week_start,
        shopping_date=shopping_date,
        scheduled_for=shopping_at - timedelta(hours=prefs.lead_time_hours),
    )
