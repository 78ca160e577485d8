"""Owner-scoped lookups.

Every mutation starts here. A row that exists but belongs to another user is
reported exactly like a missing row.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from db.models import (
    Area,
    Automation,
    DailyStep,
    EventInteraction,
    Goal,
    GoalMetric,
    Metric,
    Note,
    Value,
)
from services.errors import NotFoundError


def _owned(db: Session, model, user_id: int, row_id, label: str):
    try:
        key = int(row_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} not found") from None
    row = db.query(model).filter(model.id == key, model.user_id == user_id).first()
    if not row:
        raise NotFoundError(f"{label} not found")
    return row


def get_owned_goal(db: Session, user_id: int, goal_id) -> Goal:
    return _owned(db, Goal, user_id, goal_id, "Goal")


def get_owned_step(db: Session, user_id: int, step_id) -> DailyStep:
    return _owned(db, DailyStep, user_id, step_id, "Step")


def get_owned_metric(db: Session, user_id: int, metric_id) -> Metric:
    return _owned(db, Metric, user_id, metric_id, "Metric")


def get_owned_goal_metric(db: Session, user_id: int, metric_id) -> GoalMetric:
    return _owned(db, GoalMetric, user_id, metric_id, "Goal metric")


def get_owned_automation(db: Session, user_id: int, automation_id) -> Automation:
    return _owned(db, Automation, user_id, automation_id, "Automation")


def get_owned_interaction(db: Session, user_id: int, interaction_id) -> EventInteraction:
    return _owned(db, EventInteraction, user_id, interaction_id, "Event interaction")


def get_owned_value(db: Session, user_id: int, value_id) -> Value:
    return _owned(db, Value, user_id, value_id, "Value")


def get_owned_area(db: Session, user_id: int, area_id) -> Area:
    return _owned(db, Area, user_id, area_id, "Area")


def get_owned_note(db: Session, user_id: int, note_id) -> Note:
    return _owned(db, Note, user_id, note_id, "Note")
