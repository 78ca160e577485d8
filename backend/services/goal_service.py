from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from db.models import DailyStep, Goal, GoalMetric, Metric, Note, User
from services.automation_service import delete_automations_targeting
from services.category_service import refresh_goal_category, thresholds_for
from services.errors import InvalidInputError
from services.ownership import get_owned_area, get_owned_goal, get_owned_goal_metric
from services.progress_service import PROGRESS_TYPES, initial_percentage, ratio_pct, refresh_goal_progress
from services.step_service import METRIC_TYPES

logger = logging.getLogger(__name__)

VALID_STATUSES = {"active", "completed", "paused", "cancelled"}
VALID_PRIORITIES = {"meaningful", "nice-to-have"}
VALID_GOAL_TYPES = {"outcome", "process"}


def _optional_number(value, field: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{field} must be a number")
    return float(value)


def _check_choice(value: str, allowed: set[str], field: str) -> str:
    if value not in allowed:
        raise InvalidInputError(f"{field} must be one of {sorted(allowed)}")
    return value


def list_goals(db: Session, user: User, today: date, status: str | None = None) -> list[Goal]:
    query = db.query(Goal).filter(Goal.user_id == user.id)
    if status and status != "all":
        query = query.filter(Goal.status == status)
    goals = query.order_by(Goal.created_at.asc(), Goal.id.asc()).all()
    # The calendar moves under stored categories, so reclassify on read.
    thresholds = thresholds_for(db, user)
    for goal in goals:
        refresh_goal_category(db, user, goal, today, thresholds)
    db.flush()
    return goals


def create_goal(
    db: Session,
    user: User,
    today: date,
    *,
    title: str,
    description: str | None = None,
    target_date: date | None = None,
    priority: str = "meaningful",
    goal_type: str = "outcome",
    progress_type: str = "percentage",
    progress_target=None,
    progress_current=None,
    progress_unit: str | None = None,
    area_id: int | None = None,
    icon: str | None = None,
) -> Goal:
    title = (title or "").strip()
    if not title:
        raise InvalidInputError("title is required")
    _check_choice(priority, VALID_PRIORITIES, "priority")
    _check_choice(goal_type, VALID_GOAL_TYPES, "goal_type")
    _check_choice(progress_type, set(PROGRESS_TYPES), "progress_type")
    target = _optional_number(progress_target, "progress_target")
    current = _optional_number(progress_current, "progress_current")
    area = get_owned_area(db, user.id, area_id) if area_id is not None else None

    goal = Goal(
        user_id=user.id,
        area_id=area.id if area else None,
        title=title,
        description=description,
        target_date=target_date,
        status="active",
        priority=priority,
        goal_type=goal_type,
        progress_type=progress_type,
        progress_target=target,
        progress_current=current if current is not None else 0.0,
        progress_unit=progress_unit,
        progress_percentage=initial_percentage(progress_type, current or 0.0, target),
        icon=icon,
    )
    refresh_goal_category(db, user, goal, today)
    db.add(goal)
    db.flush()
    return goal


def update_goal(db: Session, user: User, goal_id, today: date, **changes) -> Goal:
    goal = get_owned_goal(db, user.id, goal_id)

    if changes.get("title") is not None:
        title = changes["title"].strip()
        if not title:
            raise InvalidInputError("title is required")
        goal.title = title
    if changes.get("status") is not None:
        goal.status = _check_choice(changes["status"], VALID_STATUSES, "status")
    if changes.get("priority") is not None:
        goal.priority = _check_choice(changes["priority"], VALID_PRIORITIES, "priority")
    if changes.get("goal_type") is not None:
        goal.goal_type = _check_choice(changes["goal_type"], VALID_GOAL_TYPES, "goal_type")
    if changes.get("progress_type") is not None:
        goal.progress_type = _check_choice(changes["progress_type"], set(PROGRESS_TYPES), "progress_type")
    if changes.get("progress_target") is not None:
        goal.progress_target = _optional_number(changes["progress_target"], "progress_target")
    if changes.get("area_id") is not None:
        goal.area_id = get_owned_area(db, user.id, changes["area_id"]).id
    if changes.get("clear_target_date"):
        goal.target_date = None
    elif changes.get("target_date") is not None:
        goal.target_date = changes["target_date"]
    for key in ("description", "progress_unit", "icon"):
        if changes.get(key) is not None:
            setattr(goal, key, changes[key])

    if goal.progress_type in {"count", "amount"} and changes.get("progress_target") is not None:
        goal.progress_percentage = ratio_pct(goal.progress_current, goal.progress_target)
    elif goal.progress_type in {"steps", "metrics", "combined"} and changes.get("progress_type") is not None:
        refresh_goal_progress(db, goal)

    refresh_goal_category(db, user, goal, today)
    goal.updated_at = datetime.now(timezone.utc)
    db.flush()
    return goal


def delete_goal(db: Session, user: User, goal_id) -> None:
    """Delete a goal with its steps, their metrics, its notes and any automations on them."""
    goal = get_owned_goal(db, user.id, goal_id)
    steps = db.query(DailyStep).filter(DailyStep.user_id == user.id, DailyStep.goal_id == goal.id).all()
    step_ids = [step.id for step in steps]
    metric_ids: list[int] = []
    if step_ids:
        metric_ids = [
            row.id
            for row in db.query(Metric.id).filter(Metric.user_id == user.id, Metric.step_id.in_(step_ids)).all()
        ]
    removed = delete_automations_targeting(db, user, step_ids=step_ids, metric_ids=metric_ids)
    if metric_ids:
        db.query(DailyStep).filter(DailyStep.user_id == user.id, DailyStep.metric_id.in_(metric_ids)).update(
            {DailyStep.metric_id: None}, synchronize_session=False
        )
        db.query(Metric).filter(Metric.id.in_(metric_ids)).delete(synchronize_session=False)
    for step in steps:
        db.delete(step)
    notes = (
        db.query(Note)
        .filter(Note.user_id == user.id, Note.goal_id == goal.id)
        .delete(synchronize_session=False)
    )
    db.delete(goal)
    db.flush()
    logger.info(
        f"Deleted goal {goal_id} for user {user.id}: {len(step_ids)} step(s), "
        f"{len(metric_ids)} metric(s), {notes} note(s), {removed} automation(s)"
    )


def goal_to_dict(goal: Goal) -> dict:
    return {
        "id": goal.id,
        "area_id": goal.area_id,
        "title": goal.title,
        "description": goal.description,
        "target_date": goal.target_date.isoformat() if goal.target_date else None,
        "status": goal.status,
        "priority": goal.priority,
        "category": goal.category,
        "goal_type": goal.goal_type,
        "progress_type": goal.progress_type,
        "progress_percentage": goal.progress_percentage,
        "progress_target": goal.progress_target,
        "progress_current": goal.progress_current,
        "progress_unit": goal.progress_unit,
        "icon": goal.icon,
        "created_at": goal.created_at.isoformat() if goal.created_at else None,
        "updated_at": goal.updated_at.isoformat() if goal.updated_at else None,
    }


# ─── Goal metrics ───


def list_goal_metrics(db: Session, user: User, goal_id) -> list[GoalMetric]:
    goal = get_owned_goal(db, user.id, goal_id)
    return (
        db.query(GoalMetric)
        .filter(GoalMetric.user_id == user.id, GoalMetric.goal_id == goal.id)
        .order_by(GoalMetric.id.asc())
        .all()
    )


def create_goal_metric(
    db: Session,
    user: User,
    *,
    goal_id,
    name: str,
    description: str | None = None,
    metric_type: str = "number",
    unit: str | None = None,
    target_value=None,
    current_value=0.0,
) -> GoalMetric:
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("name is required")
    _check_choice(metric_type, METRIC_TYPES, "type")
    goal = get_owned_goal(db, user.id, goal_id)
    metric = GoalMetric(
        user_id=user.id,
        goal_id=goal.id,
        name=name,
        description=description,
        type=metric_type,
        unit=unit,
        target_value=_optional_number(target_value, "target_value"),
        current_value=_optional_number(current_value, "current_value") or 0.0,
    )
    db.add(metric)
    db.flush()
    refresh_goal_progress(db, goal)
    return metric


def update_goal_metric(db: Session, user: User, metric_id, **changes) -> GoalMetric:
    metric = get_owned_goal_metric(db, user.id, metric_id)
    if changes.get("name") is not None:
        name = changes["name"].strip()
        if not name:
            raise InvalidInputError("name is required")
        metric.name = name
    if changes.get("metric_type") is not None:
        metric.type = _check_choice(changes["metric_type"], METRIC_TYPES, "type")
    for key in ("target_value", "current_value"):
        if changes.get(key) is not None:
            setattr(metric, key, _optional_number(changes[key], key))
    for key in ("description", "unit"):
        if changes.get(key) is not None:
            setattr(metric, key, changes[key])
    metric.updated_at = datetime.now(timezone.utc)
    db.flush()
    refresh_goal_progress(db, get_owned_goal(db, user.id, metric.goal_id))
    return metric


def delete_goal_metric(db: Session, user: User, metric_id) -> None:
    metric = get_owned_goal_metric(db, user.id, metric_id)
    goal = get_owned_goal(db, user.id, metric.goal_id)
    db.delete(metric)
    db.flush()
    refresh_goal_progress(db, goal)


def goal_metric_to_dict(metric: GoalMetric) -> dict:
    return {
        "id": metric.id,
        "goal_id": metric.goal_id,
        "name": metric.name,
        "description": metric.description,
        "type": metric.type,
        "unit": metric.unit,
        "target_value": metric.target_value,
        "current_value": metric.current_value,
    }
