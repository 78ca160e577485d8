"""Automation schedules, smart-event evaluation and interaction transitions."""
from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Database  # noqa: E402
from db.models import DailyStep, EventInteraction, Goal, Metric, User, UserSettings  # noqa: E402
from services.automation_service import (  # noqa: E402
    DailySchedule,
    MonthlySchedule,
    OneTimeSchedule,
    WeeklySchedule,
    complete_interaction,
    create_automation,
    delete_automation,
    evaluate_smart_events,
    generate_automated_steps,
    list_pending_events,
    parse_legacy_cadence,
    postpone_interaction,
    schedule_matches,
    update_automation,
)
from services.errors import InvalidInputError, NotFoundError  # noqa: E402

TODAY = date(2024, 1, 1)  # a Monday


def _new_db():
    database = Database("sqlite://")
    database.create_all()
    return database.SessionLocal()


def _new_user(db, external_id="automator") -> User:
    user = User(external_id=external_id)
    user.settings = UserSettings(daily_steps_count=3, workflow="daily_planning", daily_reset_hour=0, timezone="UTC")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _goal_with_step(db, user, *, with_goal=True) -> DailyStep:
    goal_id = None
    if with_goal:
        goal = Goal(user_id=user.id, title="Get fit", progress_type="steps")
        db.add(goal)
        db.flush()
        goal_id = goal.id
    step = DailyStep(user_id=user.id, goal_id=goal_id, title="Stretch", date=TODAY)
    db.add(step)
    db.commit()
    return step


def _daily_step_automation(db, user, step, cadence="daily"):
    automation = create_automation(
        db,
        user,
        name="Stretch every day",
        automation_type="step",
        target_id=step.id,
        frequency_type="recurring",
        frequency_time=cadence,
    )
    db.commit()
    return automation


# ─── Schedules ───


def test_legacy_cadence_recognises_daily_markers_only():
    assert parse_legacy_cadence("recurring", "Daily at 8", None) == DailySchedule()
    assert parse_legacy_cadence("recurring", "DENNĚ ráno", None) == DailySchedule()
    assert parse_legacy_cadence("recurring", "weekly", None) is None
    assert parse_legacy_cadence("recurring", None, None) is None
    assert parse_legacy_cadence("one-time", "daily", TODAY) == OneTimeSchedule(on=TODAY)
    assert parse_legacy_cadence("one-time", None, None) is None


def test_schedule_matching():
    assert schedule_matches(DailySchedule(), TODAY)
    assert schedule_matches(WeeklySchedule(day_of_week=0), TODAY)
    assert not schedule_matches(WeeklySchedule(day_of_week=3), TODAY)
    assert schedule_matches(OneTimeSchedule(on=TODAY), TODAY)
    assert not schedule_matches(OneTimeSchedule(on=TODAY), TODAY + timedelta(days=1))
    assert not schedule_matches(None, TODAY)


def test_monthly_schedule_past_month_end_fires_on_last_day():
    schedule = MonthlySchedule(day_of_month=31)
    assert schedule_matches(schedule, date(2024, 2, 29))
    assert not schedule_matches(schedule, date(2024, 2, 28))
    assert schedule_matches(schedule, date(2024, 3, 31))
    assert not schedule_matches(schedule, date(2024, 3, 30))


def test_structured_schedule_wins_over_free_text_cadence():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)

    automation = create_automation(
        db,
        user,
        name="Fifteenth of the month",
        automation_type="step",
        target_id=step.id,
        frequency_time="daily",
        schedule=MonthlySchedule(day_of_month=15),
    )

    assert automation.schedule_kind == "monthly"
    assert automation.schedule_day == 15
    assert automation.frequency_time == "daily"


# ─── Automation CRUD ───


def test_create_automation_requires_owned_target():
    db = _new_db()
    owner = _new_user(db, "owner")
    other = _new_user(db, "other")
    step = _goal_with_step(db, owner)

    with pytest.raises(NotFoundError):
        create_automation(db, other, name="Sneaky", automation_type="step", target_id=step.id)
    with pytest.raises(InvalidInputError):
        create_automation(db, owner, name="Bad type", automation_type="habit", target_id=step.id)


def test_schedule_is_decided_at_write_time():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    automation = _daily_step_automation(db, user, step, cadence="every weekday")
    assert automation.schedule_kind is None

    update_automation(db, user, automation.id, schedule=WeeklySchedule(day_of_week=0))
    assert automation.schedule_kind == "weekly"
    assert automation.schedule_day == 0

    update_automation(db, user, automation.id, frequency_time="denně")
    assert automation.schedule_kind == "daily"


# ─── Smart events ───


def test_evaluating_twice_creates_one_interaction_and_no_duplicate_events():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    automation = _daily_step_automation(db, user, step)

    first = evaluate_smart_events(db, user, TODAY)
    db.commit()
    second = evaluate_smart_events(db, user, TODAY)
    db.commit()

    assert len(first) == 1
    assert first[0]["event_type"] == "step_reminder"
    assert first[0]["goal_id"] == step.goal_id
    assert first[0]["target_step_id"] == step.id
    assert first[0]["update_value"] is None
    assert second == []
    rows = db.query(EventInteraction).filter(EventInteraction.automation_id == automation.id).all()
    assert len(rows) == 1
    assert rows[0].status == "pending"
    assert rows[0].date == TODAY


def test_pending_events_are_rebuilt_from_interactions():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    _daily_step_automation(db, user, step)

    (generated,) = evaluate_smart_events(db, user, TODAY)
    db.commit()
    (listed,) = list_pending_events(db, user, TODAY)

    assert listed["id"] == generated["id"]
    assert listed["title"] == generated["title"]
    assert list_pending_events(db, user, TODAY + timedelta(days=1)) == []


def test_metric_automation_resolves_through_its_step():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    metric = Metric(user_id=user.id, step_id=step.id, name="Push-ups", target_value=50)
    db.add(metric)
    db.commit()
    create_automation(
        db, user, name="Log push-ups", automation_type="metric", target_id=metric.id, frequency_time="daily"
    )
    db.commit()

    (event,) = evaluate_smart_events(db, user, TODAY)

    assert event["event_type"] == "metric_update"
    assert event["target_metric_id"] == metric.id
    assert event["target_step_id"] == step.id
    assert event["update_value"] == 0


def test_automation_without_goal_is_skipped():
    db = _new_db()
    user = _new_user(db)
    orphan_step = _goal_with_step(db, user, with_goal=False)
    _daily_step_automation(db, user, orphan_step)

    assert evaluate_smart_events(db, user, TODAY) == []
    assert db.query(EventInteraction).count() == 0


def test_inactive_and_unscheduled_automations_never_fire():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    weekly_text = _daily_step_automation(db, user, step, cadence="every Tuesday")
    paused = _daily_step_automation(db, user, step)
    update_automation(db, user, paused.id, is_active=False)
    db.commit()

    assert weekly_text.schedule_kind is None
    assert evaluate_smart_events(db, user, TODAY) == []


def test_handled_interactions_are_not_regenerated():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    _daily_step_automation(db, user, step)
    (event,) = evaluate_smart_events(db, user, TODAY)
    db.commit()

    complete_interaction(db, user, event["id"])
    db.commit()

    assert evaluate_smart_events(db, user, TODAY) == []
    assert list_pending_events(db, user, TODAY) == []


def test_complete_is_idempotent():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    _daily_step_automation(db, user, step)
    (event,) = evaluate_smart_events(db, user, TODAY)

    first = complete_interaction(db, user, event["id"])
    stamp = first.completed_at
    second = complete_interaction(db, user, event["id"])

    assert second.status == "completed"
    assert second.completed_at == stamp
    assert db.query(EventInteraction).count() == 1


def test_postpone_defaults_to_tomorrow_and_accepts_a_date():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    _daily_step_automation(db, user, step)
    (event,) = evaluate_smart_events(db, user, TODAY)

    interaction = postpone_interaction(db, user, event["id"], TODAY)
    assert interaction.status == "postponed"
    assert interaction.postponed_to == TODAY + timedelta(days=1)

    interaction = postpone_interaction(db, user, event["id"], TODAY, date(2024, 1, 5))
    assert interaction.postponed_to == date(2024, 1, 5)


def test_interactions_of_other_users_are_not_found():
    db = _new_db()
    owner = _new_user(db, "owner")
    other = _new_user(db, "other")
    step = _goal_with_step(db, owner)
    _daily_step_automation(db, owner, step)
    (event,) = evaluate_smart_events(db, owner, TODAY)

    with pytest.raises(NotFoundError):
        complete_interaction(db, other, event["id"])
    with pytest.raises(NotFoundError):
        postpone_interaction(db, other, event["id"], TODAY)


def test_delete_automation_removes_its_interactions():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    automation = _daily_step_automation(db, user, step)
    evaluate_smart_events(db, user, TODAY)
    db.commit()

    delete_automation(db, user, automation.id)
    db.commit()

    assert db.query(EventInteraction).count() == 0


# ─── Step generation ───


def test_generate_automated_steps_creates_one_step_per_day():
    db = _new_db()
    user = _new_user(db)
    step = _goal_with_step(db, user)
    _daily_step_automation(db, user, step)

    created = generate_automated_steps(db, user, TODAY)
    db.commit()
    again = generate_automated_steps(db, user, TODAY)

    assert len(created) == 1
    assert created[0].title == "Stretch every day"
    assert created[0].goal_id == step.goal_id
    assert again == []
    assert db.query(DailyStep).filter(DailyStep.goal_id == step.goal_id).count() == 2
