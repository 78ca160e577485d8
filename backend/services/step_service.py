from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from db.models import DailyStep, Goal, Metric, User
from services.automation_service import delete_automations_targeting
from services.errors import InvalidInputError
from services.ownership import get_owned_goal, get_owned_metric, get_owned_step
from services.progress_service import refresh_goal_progress
from utils.datetime_utils import tomorrow_of


STEP_TYPES = {"update", "revision", "custom"}
METRIC_TYPES = {"number", "currency", "percentage", "distance", "time", "custom"}


def _goal_of(db: Session, step: DailyStep) -> Goal | None:
    if step.goal_id is None:
        return None
    return db.query(Goal).filter(Goal.id == step.goal_id, Goal.user_id == step.user_id).first()


def _number_or_none(value, field: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{field} must be a number")
    return float(value)


def list_steps(
    db: Session,
    user: User,
    *,
    day: date | None = None,
    goal_id: int | None = None,
) -> list[DailyStep]:
    query = db.query(DailyStep).filter(DailyStep.user_id == user.id)
    if day is not None:
        query = query.filter(DailyStep.date == day)
    if goal_id is not None:
        query = query.filter(DailyStep.goal_id == goal_id)
    return query.order_by(DailyStep.date.asc(), DailyStep.id.asc()).all()


def steps_by_goal(db: Session, user: User, goal_ids: list[int]) -> dict[int, list[DailyStep]]:
    grouped: dict[int, list[DailyStep]] = {goal_id: [] for goal_id in goal_ids}
    if not goal_ids:
        return grouped
    rows = (
        db.query(DailyStep)
        .filter(DailyStep.user_id == user.id, DailyStep.goal_id.in_(goal_ids))
        .order_by(DailyStep.date.asc(), DailyStep.id.asc())
        .all()
    )
    for step in rows:
        grouped[step.goal_id].append(step)
    return grouped


def create_step(
    db: Session,
    user: User,
    *,
    title: str,
    day: date,
    description: str | None = None,
    goal_id: int | None = None,
    metric_id: int | None = None,
    is_important: bool = False,
    is_urgent: bool = False,
    deadline: date | None = None,
    step_type: str = "custom",
    custom_type_name: str | None = None,
    update_value=None,
    update_unit: str | None = None,
) -> DailyStep:
    title = (title or "").strip()
    if not title:
        raise InvalidInputError("title is required")
    if step_type not in STEP_TYPES:
        raise InvalidInputError(f"step_type must be one of {sorted(STEP_TYPES)}")
    goal = get_owned_goal(db, user.id, goal_id) if goal_id is not None else None
    metric = get_owned_metric(db, user.id, metric_id) if metric_id is not None else None

    step = DailyStep(
        user_id=user.id,
        goal_id=goal.id if goal else None,
        metric_id=metric.id if metric else None,
        title=title,
        description=description,
        date=day,
        completed=False,
        is_important=bool(is_important),
        is_urgent=bool(is_urgent),
        deadline=deadline,
        step_type=step_type,
        custom_type_name=custom_type_name,
        update_value=_number_or_none(update_value, "update_value"),
        update_unit=update_unit,
    )
    db.add(step)
    db.flush()
    refresh_goal_progress(db, goal)
    return step


def update_step(db: Session, user: User, step_id, **changes) -> DailyStep:
    step = get_owned_step(db, user.id, step_id)
    previous_goal = _goal_of(db, step)

    if changes.get("title") is not None:
        title = changes["title"].strip()
        if not title:
            raise InvalidInputError("title is required")
        step.title = title
    if changes.get("step_type") is not None:
        if changes["step_type"] not in STEP_TYPES:
            raise InvalidInputError(f"step_type must be one of {sorted(STEP_TYPES)}")
        step.step_type = changes["step_type"]
    if changes.get("goal_id") is not None:
        step.goal_id = get_owned_goal(db, user.id, changes["goal_id"]).id
    if changes.get("metric_id") is not None:
        step.metric_id = get_owned_metric(db, user.id, changes["metric_id"]).id
    if changes.get("update_value") is not None:
        step.update_value = _number_or_none(changes["update_value"], "update_value")
    if changes.get("day") is not None:
        step.date = changes["day"]
    for key in ("description", "deadline", "custom_type_name", "update_unit"):
        if changes.get(key) is not None:
            setattr(step, key, changes[key])
    for key in ("is_important", "is_urgent"):
        if changes.get(key) is not None:
            setattr(step, key, bool(changes[key]))

    step.updated_at = datetime.now(timezone.utc)
    db.flush()
    current_goal = _goal_of(db, step)
    if previous_goal is not None and (current_goal is None or previous_goal.id != current_goal.id):
        refresh_goal_progress(db, previous_goal)
    refresh_goal_progress(db, current_goal)
    return step


def toggle_step(db: Session, user: User, step_id, completed: bool) -> tuple[DailyStep, Goal | None]:
    """Set a step's completion flag.

    Returns the step and, when the step became completed by this call, its
    freshly recomputed goal.
    """
    step = get_owned_step(db, user.id, step_id)
    newly_completed = bool(completed) and not bool(step.completed)
    step.completed = bool(completed)
    if not completed:
        step.completed_at = None
    elif newly_completed:
        step.completed_at = datetime.now(timezone.utc)
    step.updated_at = datetime.now(timezone.utc)
    db.flush()

    goal = refresh_goal_progress(db, _goal_of(db, step))
    return step, (goal if newly_completed else None)


def postpone_step(db: Session, user: User, step_id, today: date, new_day: date | None = None) -> DailyStep:
    step = get_owned_step(db, user.id, step_id)
    step.date = new_day or tomorrow_of(today)
    step.updated_at = datetime.now(timezone.utc)
    db.flush()
    return step


def update_step_value(db: Session, user: User, step_id, value) -> DailyStep:
    number = _number_or_none(value, "update_value")
    if number is None:
        raise InvalidInputError("update_value is required")
    step = get_owned_step(db, user.id, step_id)
    step.update_value = number
    step.updated_at = datetime.now(timezone.utc)
    db.flush()
    return step


def delete_step(db: Session, user: User, step_id) -> None:
    step = get_owned_step(db, user.id, step_id)
    goal = _goal_of(db, step)
    metric_ids = [row.id for row in db.query(Metric.id).filter(Metric.user_id == user.id, Metric.step_id == step.id).all()]
    delete_automations_targeting(db, user, step_ids=[step.id], metric_ids=metric_ids)
    if metric_ids:
        db.query(DailyStep).filter(DailyStep.user_id == user.id, DailyStep.metric_id.in_(metric_ids)).update(
            {DailyStep.metric_id: None}, synchronize_session=False
        )
        db.query(Metric).filter(Metric.id.in_(metric_ids)).delete(synchronize_session=False)
    db.delete(step)
    db.flush()
    refresh_goal_progress(db, goal)


def step_to_dict(step: DailyStep) -> dict:
    return {
        "id": step.id,
        "goal_id": step.goal_id,
        "metric_id": step.metric_id,
        "title": step.title,
        "description": step.description,
        "date": step.date.isoformat() if step.date else None,
        "completed": bool(step.completed),
        "completed_at": step.completed_at.isoformat() if step.completed_at else None,
        "is_important": bool(step.is_important),
        "is_urgent": bool(step.is_urgent),
        "deadline": step.deadline.isoformat() if step.deadline else None,
        "step_type": step.step_type,
        "custom_type_name": step.custom_type_name,
        "update_value": step.update_value,
        "update_unit": step.update_unit,
        "created_at": step.created_at.isoformat() if step.created_at else None,
    }


# ─── Step-scoped metrics ───


def list_metrics(db: Session, user: User, step_id: int | None = None) -> list[Metric]:
    query = db.query(Metric).filter(Metric.user_id == user.id)
    if step_id is not None:
        query = query.filter(Metric.step_id == step_id)
    return query.order_by(Metric.id.asc()).all()


def create_metric(
    db: Session,
    user: User,
    *,
    step_id,
    name: str,
    description: str | None = None,
    metric_type: str = "number",
    unit: str | None = None,
    target_value=None,
    current_value=0.0,
) -> Metric:
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("name is required")
    if metric_type not in METRIC_TYPES:
        raise InvalidInputError(f"type must be one of {sorted(METRIC_TYPES)}")
    step = get_owned_step(db, user.id, step_id)
    metric = Metric(
        user_id=user.id,
        step_id=step.id,
        name=name,
        description=description,
        type=metric_type,
        unit=unit,
        target_value=_number_or_none(target_value, "target_value"),
        current_value=_number_or_none(current_value, "current_value") or 0.0,
    )
    db.add(metric)
    db.flush()
    return metric


def update_metric(db: Session, user: User, metric_id, **changes) -> Metric:
    metric = get_owned_metric(db, user.id, metric_id)
    if changes.get("name") is not None:
        name = changes["name"].strip()
        if not name:
            raise InvalidInputError("name is required")
        metric.name = name
    if changes.get("metric_type") is not None:
        if changes["metric_type"] not in METRIC_TYPES:
            raise InvalidInputError(f"type must be one of {sorted(METRIC_TYPES)}")
        metric.type = changes["metric_type"]
    for key in ("target_value", "current_value"):
        if changes.get(key) is not None:
            setattr(metric, key, _number_or_none(changes[key], key))
    for key in ("description", "unit"):
        if changes.get(key) is not None:
            setattr(metric, key, changes[key])
    metric.updated_at = datetime.now(timezone.utc)
    db.flush()
    return metric


def delete_metric(db: Session, user: User, metric_id) -> None:
    metric = get_owned_metric(db, user.id, metric_id)
    delete_automations_targeting(db, user, metric_ids=[metric.id])
    db.query(DailyStep).filter(DailyStep.user_id == user.id, DailyStep.metric_id == metric.id).update(
        {DailyStep.metric_id: None}, synchronize_session=False
    )
    db.delete(metric)
    db.flush()


def metric_to_dict(metric: Metric) -> dict:
    return {
        "id": metric.id,
        "step_id": metric.step_id,
        "name": metric.name,
        "description": metric.description,
        "type": metric.type,
        "unit": metric.unit,
        "target_value": metric.target_value,
        "current_value": metric.current_value,
    }
