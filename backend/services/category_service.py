from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from config import settings
from db.models import CategorySettings, Goal, User
from services.errors import InvalidInputError
from services.validation import whole_number
from utils.datetime_utils import as_date

logger = logging.getLogger(__name__)

CATEGORIES = ("short_term", "medium_term", "long_term", "no_deadline")


def classify_goal(
    target_date: date | None,
    short_term_days: int,
    long_term_days: int,
    today: date,
) -> str:
    """Bucket a goal by whole days until its target date.

    Both thresholds are inclusive and overdue goals land in ``short_term``.
    """
    if target_date is None:
        return "no_deadline"
    distance = (as_date(target_date) - today).days
    if distance <= short_term_days:
        return "short_term"
    if distance <= long_term_days:
        return "medium_term"
    return "long_term"


def get_or_create_category_settings(db: Session, user: User) -> CategorySettings:
    row = db.query(CategorySettings).filter(CategorySettings.user_id == user.id).first()
    if row:
        return row
    row = CategorySettings(
        user_id=user.id,
        short_term_days=settings.DEFAULT_SHORT_TERM_DAYS,
        long_term_days=settings.DEFAULT_LONG_TERM_DAYS,
    )
    db.add(row)
    db.flush()
    return row


def thresholds_for(db: Session, user: User) -> tuple[int, int]:
    row = db.query(CategorySettings).filter(CategorySettings.user_id == user.id).first()
    if not row:
        return settings.DEFAULT_SHORT_TERM_DAYS, settings.DEFAULT_LONG_TERM_DAYS
    return int(row.short_term_days), int(row.long_term_days)


def refresh_goal_category(
    db: Session,
    user: User,
    goal: Goal,
    today: date,
    thresholds: tuple[int, int] | None = None,
) -> str:
    short_days, long_days = thresholds or thresholds_for(db, user)
    category = classify_goal(goal.target_date, short_days, long_days, today)
    if goal.category != category:
        goal.category = category
    return category


def recompute_categories_for_user(db: Session, user: User, today: date) -> int:
    """Reclassify every goal of the user; returns how many changed."""
    thresholds = thresholds_for(db, user)
    changed = 0
    for goal in db.query(Goal).filter(Goal.user_id == user.id).all():
        before = goal.category
        if refresh_goal_category(db, user, goal, today, thresholds) != before:
            changed += 1
    if changed:
        db.flush()
        logger.info("Reclassified %d goal(s) for user %s", changed, user.id)
    return changed


def validate_thresholds(short_term_days, long_term_days) -> tuple[int, int]:
    short_days = whole_number(short_term_days, "short_term_days", low=1)
    long_days = whole_number(long_term_days, "long_term_days", low=1)
    if short_days >= long_days:
        raise InvalidInputError("short_term_days must be less than long_term_days")
    return short_days, long_days


def set_category_settings(
    db: Session,
    user: User,
    short_term_days,
    long_term_days,
    today: date,
) -> CategorySettings:
    short_days, long_days = validate_thresholds(short_term_days, long_term_days)
    row = get_or_create_category_settings(db, user)
    row.short_term_days = short_days
    row.long_term_days = long_days
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    recompute_categories_for_user(db, user, today)
    return row


def category_settings_to_dict(row: CategorySettings) -> dict:
    return {
        "short_term_days": row.short_term_days,
        "long_term_days": row.long_term_days,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
