from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Database  # noqa: E402
from db.models import CategorySettings, User, UserSettings  # noqa: E402
from services.category_service import classify_goal, set_category_settings  # noqa: E402
from services.errors import InvalidInputError  # noqa: E402
from services.goal_service import create_goal, list_goals, update_goal  # noqa: E402

TODAY = date(2024, 3, 15)


def _new_db():
    database = Database("sqlite://")
    database.create_all()
    return database.SessionLocal()


def _new_user(db, short_days=7, long_days=30) -> User:
    user = User(external_id="category_tester")
    user.settings = UserSettings(daily_steps_count=3, workflow="daily_planning", daily_reset_hour=0, timezone="UTC")
    user.category_settings = CategorySettings(short_term_days=short_days, long_term_days=long_days)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_overdue_goal_is_short_term():
    assert classify_goal(TODAY - timedelta(days=1), 7, 30, TODAY) == "short_term"


def test_short_threshold_is_inclusive():
    assert classify_goal(TODAY + timedelta(days=7), 7, 30, TODAY) == "short_term"
    assert classify_goal(TODAY + timedelta(days=8), 7, 30, TODAY) == "medium_term"


def test_long_threshold_is_inclusive():
    assert classify_goal(TODAY + timedelta(days=30), 7, 30, TODAY) == "medium_term"
    assert classify_goal(TODAY + timedelta(days=31), 7, 30, TODAY) == "long_term"


def test_missing_target_date_has_no_deadline_for_any_thresholds():
    assert classify_goal(None, 7, 30, TODAY) == "no_deadline"
    assert classify_goal(None, 1, 10_000, TODAY) == "no_deadline"


def test_goal_create_and_update_classify_from_target_date():
    db = _new_db()
    user = _new_user(db)

    goal = create_goal(db, user, TODAY, title="Tax return", target_date=TODAY + timedelta(days=3))
    assert goal.category == "short_term"

    update_goal(db, user, goal.id, TODAY, target_date=TODAY + timedelta(days=200))
    assert goal.category == "long_term"

    update_goal(db, user, goal.id, TODAY, clear_target_date=True)
    assert goal.category == "no_deadline"


def test_threshold_change_reclassifies_existing_goals():
    db = _new_db()
    user = _new_user(db)
    goal = create_goal(db, user, TODAY, title="Learn Czech", target_date=TODAY + timedelta(days=20))
    db.commit()
    assert goal.category == "medium_term"

    set_category_settings(db, user, 25, 60, TODAY)
    db.commit()
    db.refresh(goal)
    assert goal.category == "short_term"


def test_listing_reclassifies_as_the_date_moves():
    db = _new_db()
    user = _new_user(db)
    goal = create_goal(db, user, TODAY, title="Half marathon", target_date=TODAY + timedelta(days=10))
    db.commit()
    assert goal.category == "medium_term"

    later = TODAY + timedelta(days=5)
    (listed,) = list_goals(db, user, later)
    assert listed.category == "short_term"


@pytest.mark.parametrize(
    "short_days,long_days",
    [(30, 30), (60, 30), (0, 30), (-5, 10), (7.9, 30), ("7", 30), (7, True)],
)
def test_invalid_thresholds_are_rejected(short_days, long_days):
    db = _new_db()
    user = _new_user(db)
    with pytest.raises(InvalidInputError):
        set_category_settings(db, user, short_days, long_days, TODAY)
