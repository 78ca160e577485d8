from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Database  # noqa: E402
from db.models import User, UserSettings  # noqa: E402
from services.errors import InvalidInputError  # noqa: E402
from services.settings_service import update_needed_steps_settings, update_user_settings  # noqa: E402
from services.validation import whole_number  # noqa: E402
from utils.json_utils import int_list  # noqa: E402


def _new_db():
    database = Database("sqlite://")
    database.create_all()
    return database.SessionLocal()


def _new_user(db, external_id="configured") -> User:
    user = User(external_id=external_id)
    user.settings = UserSettings(daily_steps_count=3, workflow="daily_planning", daily_reset_hour=0, timezone="UTC")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.mark.parametrize("value", [7.9, 7.0, "7", True, None])
def test_whole_number_accepts_only_ints(value):
    with pytest.raises(InvalidInputError):
        whole_number(value, "days")


def test_whole_number_bounds():
    assert whole_number(0, "hour", low=0, high=23) == 0
    assert whole_number(23, "hour", low=0, high=23) == 23
    with pytest.raises(InvalidInputError, match="between 0 and 23"):
        whole_number(24, "hour", low=0, high=23)
    with pytest.raises(InvalidInputError, match="at least 1"):
        whole_number(0, "days", low=1)


@pytest.mark.parametrize(
    "changes",
    [
        {"daily_steps_count": 2.5},
        {"daily_steps_count": "5"},
        {"daily_steps_count": 11},
        {"daily_reset_hour": 6.0},
        {"daily_steps_count": 5, "timezone_name": "Mars/Olympus"},
    ],
)
def test_bad_user_settings_change_nothing(changes):
    db = _new_db()
    user = _new_user(db)

    with pytest.raises(InvalidInputError):
        update_user_settings(db, user, **changes)

    db.refresh(user)
    assert user.settings.daily_steps_count == 3
    assert user.settings.daily_reset_hour == 0


def test_needed_steps_days_are_whole_weekdays():
    db = _new_db()
    user = _new_user(db)

    row = update_needed_steps_settings(db, user, days_of_week=[4, 0, 4], time_hour=7)
    assert int_list(row.days_of_week) == [0, 4]
    assert row.time_hour == 7

    with pytest.raises(InvalidInputError):
        update_needed_steps_settings(db, user, days_of_week=[1.5])
    with pytest.raises(InvalidInputError):
        update_needed_steps_settings(db, user, days_of_week=[7])
