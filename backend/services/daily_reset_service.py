"""End-of-day reset: archive yesterday's planning and open today's."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.orm import Session

from config import settings as app_settings
from db.models import User, UserSettings
from services.planning_service import completed_ids, get_planning, planned_ids, reset_planning
from services.settings_service import user_now
from services.stats_service import count_steps_on, upsert_daily_stats
from utils.datetime_utils import utcnow, yesterday_of

logger = logging.getLogger(__name__)


@dataclass
class ResetResult:
    user_id: int
    status: str  # success | skipped | failed
    day: date | None = None
    statistics: dict = field(default_factory=dict)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status != "failed"

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "status": self.status,
            "success": self.success,
            "date": self.day.isoformat() if self.day else None,
            "statistics": self.statistics or None,
            "error": self.error,
        }


def _is_due(user_settings: UserSettings, local_now: datetime, catch_up: bool) -> bool:
    reset_hour = int(user_settings.daily_reset_hour or 0)
    last = user_settings.last_reset_date
    if last is not None and last >= local_now.date():
        return False
    if catch_up:
        return local_now.hour >= reset_hour
    return local_now.hour == reset_hour


def users_due_for_reset(
    db: Session,
    reference_utc: datetime,
    *,
    catch_up: bool = False,
) -> list[tuple[User, date]]:
    """Users on the daily-planning workflow whose local reset hour is now.

    Returns each user with their local "today".
    """
    candidates = (
        db.query(User)
        .join(UserSettings, UserSettings.user_id == User.id)
        .filter(UserSettings.workflow == "daily_planning")
        .order_by(User.id.asc())
        .all()
    )
    due: list[tuple[User, date]] = []
    for user in candidates:
        local_now = user_now(user, reference_utc)
        if _is_due(user.settings, local_now, catch_up):
            due.append((user, local_now.date()))
    return due


def reset_user_day(db: Session, user: User, today: date) -> ResetResult:
    yesterday = yesterday_of(today)
    user.settings.last_reset_date = today

    planning = get_planning(db, user, yesterday)
    if planning is None:
        db.flush()
        return ResetResult(user_id=user.id, status="skipped", day=yesterday)

    planned = len(planned_ids(planning))
    completed = len(completed_ids(planning))
    total = count_steps_on(db, user, yesterday)
    deviation = planned - int(user.settings.daily_steps_count or 0)

    upsert_daily_stats(
        db,
        user,
        yesterday,
        planned=planned,
        completed=completed,
        total=total,
        optimum_deviation=deviation,
    )
    reset_planning(db, user, today)
    return ResetResult(
        user_id=user.id,
        status="success",
        day=yesterday,
        statistics={
            "planned_steps": planned,
            "completed_steps": completed,
            "total_steps": total,
            "optimum_deviation": deviation,
        },
    )


def run_daily_reset(
    db: Session,
    reference_utc: datetime | None = None,
    *,
    catch_up: bool | None = None,
) -> list[ResetResult]:
    """Reset every due user, committing each one on its own."""
    now = reference_utc or utcnow()
    use_catch_up = app_settings.DAILY_RESET_CATCH_UP if catch_up is None else catch_up
    due = users_due_for_reset(db, now, catch_up=use_catch_up)
    logger.info("Daily reset at %s: %d user(s) due", now.isoformat(), len(due))

    results: list[ResetResult] = []
    for user, today in due:
        user_id = user.id
        try:
            result = reset_user_day(db, user, today)
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception("Daily reset failed for user %s", user_id)
            result = ResetResult(user_id=user_id, status="failed", day=yesterday_of(today), error=str(exc))
        else:
            if result.status == "skipped":
                logger.info("No planning for user %s on %s; reset skipped", user_id, result.day)
            else:
                logger.info("Reset user %s for %s", user_id, result.day)
        results.append(result)
    return results
