from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import DailyStats, DailyStep, User, UserStreak
from services.settings_service import get_or_create_user_settings
from services.validation import whole_number
from utils.datetime_utils import yesterday_of


def _stats_row(db: Session, user: User, day: date) -> DailyStats | None:
    return db.query(DailyStats).filter(DailyStats.user_id == user.id, DailyStats.date == day).first()


def upsert_daily_stats(
    db: Session,
    user: User,
    day: date,
    *,
    planned: int,
    completed: int,
    total: int,
    optimum_deviation: int,
) -> DailyStats:
    """Write the counts for (user, day), overwriting any earlier snapshot."""
    row = _stats_row(db, user, day)
    if row is None:
        row = DailyStats(user_id=user.id, date=day)
        try:
            with db.begin_nested():
                db.add(row)
        except IntegrityError:
            row = _stats_row(db, user, day)
            if row is None:
                raise
    row.planned_steps_count = int(planned)
    row.completed_steps_count = int(completed)
    row.total_steps_count = int(total)
    row.optimum_deviation = int(optimum_deviation)
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return row


def count_steps_on(db: Session, user: User, day: date) -> int:
    return int(
        db.query(func.count(DailyStep.id))
        .filter(DailyStep.user_id == user.id, DailyStep.date == day)
        .scalar()
        or 0
    )


def record_optimum_stats(
    db: Session,
    user: User,
    today: date,
    *,
    planned: int,
    completed: int,
    total: int | None = None,
) -> DailyStats:
    planned = whole_number(planned, "planned_steps_count", low=0)
    completed = whole_number(completed, "completed_steps_count", low=0)
    total = whole_number(total, "total_steps_count", low=0) if total is not None else count_steps_on(db, user, today)
    target = int(get_or_create_user_settings(db, user).daily_steps_count)
    return upsert_daily_stats(
        db,
        user,
        today,
        planned=planned,
        completed=completed,
        total=total,
        optimum_deviation=planned - target,
    )


def daily_stats_to_dict(row: DailyStats) -> dict:
    return {
        "date": row.date.isoformat() if row.date else None,
        "planned_steps_count": row.planned_steps_count,
        "completed_steps_count": row.completed_steps_count,
        "total_steps_count": row.total_steps_count,
        "optimum_deviation": row.optimum_deviation,
    }


# ─── Streaks ───


def get_streak(db: Session, user: User) -> UserStreak | None:
    return db.query(UserStreak).filter(UserStreak.user_id == user.id).first()


def update_user_streak(db: Session, user: User, today: date) -> UserStreak:
    """Advance the streak for activity on ``today``.

    Activity yesterday extends the streak, activity already logged today
    changes nothing, and any longer gap starts over at 1.
    """
    streak = get_streak(db, user)
    if streak is None:
        streak = UserStreak(user_id=user.id, current_streak=1, longest_streak=1, last_activity_date=today)
        try:
            with db.begin_nested():
                db.add(streak)
            return streak
        except IntegrityError:
            streak = get_streak(db, user)
            if streak is None:
                raise

    last = streak.last_activity_date
    if last == today:
        return streak
    if last == yesterday_of(today):
        streak.current_streak = int(streak.current_streak or 0) + 1
    else:
        streak.current_streak = 1
    streak.longest_streak = max(int(streak.longest_streak or 0), int(streak.current_streak))
    streak.last_activity_date = today
    streak.updated_at = datetime.now(timezone.utc)
    db.flush()
    return streak


def streak_to_dict(streak: UserStreak | None) -> dict:
    if streak is None:
        return {"current_streak": 0, "longest_streak": 0, "last_activity_date": None}
    return {
        "current_streak": streak.current_streak,
        "longest_streak": streak.longest_streak,
        "last_activity_date": streak.last_activity_date.isoformat() if streak.last_activity_date else None,
    }


# ─── Read-side aggregates ───


def step_statistics(db: Session, user: User, today: date, history_days: int = 30) -> dict:
    steps = db.query(DailyStep.date, DailyStep.completed).filter(DailyStep.user_id == user.id).all()
    total = len(steps)
    completed = sum(1 for row in steps if row.completed)
    overdue = sum(1 for row in steps if not row.completed and row.date and row.date < today)
    today_total = sum(1 for row in steps if row.date == today)
    today_completed = sum(1 for row in steps if row.date == today and row.completed)

    since = today - timedelta(days=history_days)
    history = (
        db.query(DailyStats)
        .filter(DailyStats.user_id == user.id, DailyStats.date >= since)
        .order_by(DailyStats.date.desc())
        .all()
    )
    deviations = [row.optimum_deviation for row in history if row.optimum_deviation is not None]

    return {
        "total_steps": total,
        "completed_steps": completed,
        "pending_steps": total - completed,
        "overdue_steps": overdue,
        "today_steps": today_total,
        "today_completed_steps": today_completed,
        "completion_rate": round(completed / total * 100.0, 1) if total else 0.0,
        "average_optimum_deviation": round(sum(deviations) / len(deviations), 2) if deviations else None,
        "history": [daily_stats_to_dict(row) for row in history],
    }
