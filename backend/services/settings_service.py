from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from config import settings
from db.models import NeededStepsSettings, User, UserSettings
from services.errors import InvalidInputError
from services.validation import whole_number
from utils.datetime_utils import is_valid_timezone, now_for_tz, today_for_tz
from utils.json_utils import int_list, json_dump

VALID_WORKFLOWS = {"daily_planning", "no_workflow"}


def default_user_settings() -> UserSettings:
    return UserSettings(
        daily_steps_count=settings.DEFAULT_DAILY_STEPS_COUNT,
        workflow="daily_planning",
        daily_reset_hour=settings.DEFAULT_DAILY_RESET_HOUR,
        timezone=settings.DEFAULT_TIMEZONE,
    )


def get_or_create_user_settings(db: Session, user: User) -> UserSettings:
    row = db.query(UserSettings).filter(UserSettings.user_id == user.id).first()
    if row:
        return row
    row = default_user_settings()
    row.user_id = user.id
    db.add(row)
    db.flush()
    return row


def user_timezone(user: User) -> str:
    tz_name = user.settings.timezone if user.settings else None
    return tz_name if is_valid_timezone(tz_name) else settings.DEFAULT_TIMEZONE


def user_now(user: User, reference_utc: datetime | None = None) -> datetime:
    return now_for_tz(user_timezone(user), reference_utc)


def user_today(user: User, reference_utc: datetime | None = None) -> date:
    return today_for_tz(user_timezone(user), reference_utc)


def update_user_settings(
    db: Session,
    user: User,
    *,
    daily_steps_count=None,
    workflow: str | None = None,
    daily_reset_hour=None,
    timezone_name: str | None = None,
) -> UserSettings:
    # Validate everything before touching the row so a bad field changes nothing.
    steps_count = reset_hour = None
    if daily_steps_count is not None:
        steps_count = whole_number(daily_steps_count, "daily_steps_count", low=1, high=10)
    if daily_reset_hour is not None:
        reset_hour = whole_number(daily_reset_hour, "daily_reset_hour", low=0, high=23)
    if workflow is not None and workflow not in VALID_WORKFLOWS:
        raise InvalidInputError(f"workflow must be one of {sorted(VALID_WORKFLOWS)}")
    if timezone_name is not None and not is_valid_timezone(timezone_name):
        raise InvalidInputError("Invalid timezone")

    row = get_or_create_user_settings(db, user)
    if steps_count is not None:
        row.daily_steps_count = steps_count
    if reset_hour is not None:
        row.daily_reset_hour = reset_hour
    if workflow is not None:
        row.workflow = workflow
    if timezone_name is not None:
        row.timezone = timezone_name
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return row


def user_settings_to_dict(row: UserSettings) -> dict:
    return {
        "daily_steps_count": row.daily_steps_count,
        "workflow": row.workflow,
        "daily_reset_hour": row.daily_reset_hour,
        "timezone": row.timezone,
        "last_reset_date": row.last_reset_date.isoformat() if row.last_reset_date else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def get_or_create_needed_steps_settings(db: Session, user: User) -> NeededStepsSettings:
    row = db.query(NeededStepsSettings).filter(NeededStepsSettings.user_id == user.id).first()
    if row:
        return row
    row = NeededStepsSettings(
        user_id=user.id,
        enabled=False,
        days_of_week=json_dump([0, 1, 2, 3, 4]),
        time_hour=9,
        time_minute=0,
    )
    db.add(row)
    db.flush()
    return row


def update_needed_steps_settings(
    db: Session,
    user: User,
    *,
    enabled: bool | None = None,
    days_of_week: list | None = None,
    time_hour=None,
    time_minute=None,
) -> NeededStepsSettings:
    days: list[int] | None = None
    if days_of_week is not None:
        days = sorted({whole_number(day, "days_of_week", low=0, high=6) for day in days_of_week})
    hour = whole_number(time_hour, "time_hour", low=0, high=23) if time_hour is not None else None
    minute = whole_number(time_minute, "time_minute", low=0, high=59) if time_minute is not None else None

    row = get_or_create_needed_steps_settings(db, user)
    if enabled is not None:
        row.enabled = bool(enabled)
    if days is not None:
        row.days_of_week = json_dump(days)
    if hour is not None:
        row.time_hour = hour
    if minute is not None:
        row.time_minute = minute
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return row


def needed_steps_settings_to_dict(row: NeededStepsSettings) -> dict:
    return {
        "enabled": bool(row.enabled),
        "days_of_week": int_list(row.days_of_week),
        "time_hour": row.time_hour,
        "time_minute": row.time_minute,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
