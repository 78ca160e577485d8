"""Automations, their schedules, and the smart events they surface.

An automation's schedule is fixed when the automation is written. Evaluation
only compares that structured schedule with the day being evaluated; the
free-text ``frequency_time`` is display data after that point.

The Event Interaction row for (user, automation, day) is the only durable
trace of a smart event. Event views are rebuilt from it and the current
automation/step/metric state whenever they are listed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import Automation, DailyStep, EventInteraction, Goal, Metric, User
from services.errors import InvalidInputError
from services.ownership import (
    get_owned_automation,
    get_owned_interaction,
    get_owned_metric,
    get_owned_step,
)
from services.progress_service import refresh_goal_progress
from services.settings_service import user_today
from utils.datetime_utils import last_day_of_month, tomorrow_of

logger = logging.getLogger(__name__)

AUTOMATION_TYPES = {"metric", "step"}
FREQUENCY_TYPES = {"one-time", "recurring"}
_DAILY_MARKERS = ("daily", "denně")


# ─── Schedules ───


@dataclass(frozen=True)
class DailySchedule:
    pass


@dataclass(frozen=True)
class WeeklySchedule:
    day_of_week: int  # 0 = Monday


@dataclass(frozen=True)
class MonthlySchedule:
    day_of_month: int


@dataclass(frozen=True)
class OneTimeSchedule:
    on: date


Schedule = Union[DailySchedule, WeeklySchedule, MonthlySchedule, OneTimeSchedule]


def schedule_matches(schedule: Schedule | None, today: date) -> bool:
    if schedule is None:
        return False
    if isinstance(schedule, DailySchedule):
        return True
    if isinstance(schedule, WeeklySchedule):
        return today.weekday() == schedule.day_of_week
    if isinstance(schedule, MonthlySchedule):
        # Days past the end of a short month fall on its last day.
        return today.day == min(schedule.day_of_month, last_day_of_month(today))
    if isinstance(schedule, OneTimeSchedule):
        return schedule.on == today
    return False


def parse_legacy_cadence(
    frequency_type: str | None,
    frequency_time: str | None,
    scheduled_date: date | None,
) -> Schedule | None:
    """Turn the legacy free-text cadence into a schedule, once, at write time."""
    if frequency_type == "one-time":
        return OneTimeSchedule(on=scheduled_date) if scheduled_date else None
    text = (frequency_time or "").lower()
    if any(marker in text for marker in _DAILY_MARKERS):
        return DailySchedule()
    return None


def schedule_from_row(automation: Automation) -> Schedule | None:
    kind = automation.schedule_kind
    if kind == "daily":
        return DailySchedule()
    if kind == "weekly" and automation.schedule_day is not None:
        return WeeklySchedule(day_of_week=int(automation.schedule_day))
    if kind == "monthly" and automation.schedule_day is not None:
        return MonthlySchedule(day_of_month=int(automation.schedule_day))
    if kind == "one_time" and automation.scheduled_date is not None:
        return OneTimeSchedule(on=automation.scheduled_date)
    return None


def _apply_schedule(automation: Automation, schedule: Schedule | None) -> None:
    automation.schedule_day = None
    if schedule is None:
        automation.schedule_kind = None
    elif isinstance(schedule, DailySchedule):
        automation.schedule_kind = "daily"
        automation.frequency_type = "recurring"
    elif isinstance(schedule, WeeklySchedule):
        automation.schedule_kind = "weekly"
        automation.schedule_day = schedule.day_of_week
        automation.frequency_type = "recurring"
    elif isinstance(schedule, MonthlySchedule):
        automation.schedule_kind = "monthly"
        automation.schedule_day = schedule.day_of_month
        automation.frequency_type = "recurring"
    elif isinstance(schedule, OneTimeSchedule):
        automation.schedule_kind = "one_time"
        automation.scheduled_date = schedule.on
        automation.frequency_type = "one-time"


def schedule_to_dict(schedule: Schedule | None) -> dict | None:
    if schedule is None:
        return None
    if isinstance(schedule, DailySchedule):
        return {"kind": "daily"}
    if isinstance(schedule, WeeklySchedule):
        return {"kind": "weekly", "day_of_week": schedule.day_of_week}
    if isinstance(schedule, MonthlySchedule):
        return {"kind": "monthly", "day_of_month": schedule.day_of_month}
    return {"kind": "one_time", "on": schedule.on.isoformat()}


# ─── Automation CRUD ───


def _verify_target(db: Session, user: User, automation_type: str, target_id) -> int:
    if automation_type not in AUTOMATION_TYPES:
        raise InvalidInputError(f"type must be one of {sorted(AUTOMATION_TYPES)}")
    if automation_type == "metric":
        return get_owned_metric(db, user.id, target_id).id
    return get_owned_step(db, user.id, target_id).id


def create_automation(
    db: Session,
    user: User,
    *,
    name: str,
    automation_type: str,
    target_id,
    description: str | None = None,
    frequency_type: str = "recurring",
    frequency_time: str | None = None,
    scheduled_date: date | None = None,
    schedule: Schedule | None = None,
    is_active: bool = True,
) -> Automation:
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("name is required")
    if frequency_type not in FREQUENCY_TYPES:
        raise InvalidInputError(f"frequency_type must be one of {sorted(FREQUENCY_TYPES)}")
    resolved_target = _verify_target(db, user, automation_type, target_id)
    structured = schedule if schedule is not None else parse_legacy_cadence(
        frequency_type, frequency_time, scheduled_date
    )

    automation = Automation(
        user_id=user.id,
        name=name,
        description=description,
        type=automation_type,
        target_id=resolved_target,
        frequency_type=frequency_type,
        frequency_time=frequency_time,
        scheduled_date=scheduled_date,
        is_active=bool(is_active),
    )
    _apply_schedule(automation, structured)
    db.add(automation)
    db.flush()
    if structured is None:
        logger.info(f"Automation {automation.id} has no recognised schedule and will not fire")
    return automation


def update_automation(db: Session, user: User, automation_id, **changes) -> Automation:
    automation = get_owned_automation(db, user.id, automation_id)

    if changes.get("name") is not None:
        name = changes["name"].strip()
        if not name:
            raise InvalidInputError("name is required")
        automation.name = name
    if changes.get("description") is not None:
        automation.description = changes["description"]
    if changes.get("is_active") is not None:
        automation.is_active = bool(changes["is_active"])

    new_type = changes.get("automation_type")
    new_target = changes.get("target_id")
    if new_type is not None or new_target is not None:
        automation_type = new_type or automation.type
        target_id = new_target if new_target is not None else automation.target_id
        automation.target_id = _verify_target(db, user, automation_type, target_id)
        automation.type = automation_type

    schedule_keys = ("frequency_type", "frequency_time", "scheduled_date")
    if changes.get("schedule") is not None:
        _apply_schedule(automation, changes["schedule"])
    elif any(changes.get(key) is not None for key in schedule_keys):
        frequency_type = changes.get("frequency_type") or automation.frequency_type
        if frequency_type not in FREQUENCY_TYPES:
            raise InvalidInputError(f"frequency_type must be one of {sorted(FREQUENCY_TYPES)}")
        automation.frequency_type = frequency_type
        if changes.get("frequency_time") is not None:
            automation.frequency_time = changes["frequency_time"]
        if changes.get("scheduled_date") is not None:
            automation.scheduled_date = changes["scheduled_date"]
        _apply_schedule(
            automation,
            parse_legacy_cadence(automation.frequency_type, automation.frequency_time, automation.scheduled_date),
        )

    automation.updated_at = datetime.now(timezone.utc)
    db.flush()
    return automation


def delete_automation(db: Session, user: User, automation_id) -> None:
    automation = get_owned_automation(db, user.id, automation_id)
    db.query(EventInteraction).filter(
        EventInteraction.user_id == user.id,
        EventInteraction.automation_id == automation.id,
    ).delete(synchronize_session=False)
    db.delete(automation)
    db.flush()


def delete_automations_targeting(
    db: Session,
    user: User,
    *,
    step_ids: list[int] | None = None,
    metric_ids: list[int] | None = None,
) -> int:
    """Remove automations pointing at the given steps/metrics, with their interactions."""
    conditions = []
    if step_ids:
        conditions.append((Automation.type == "step") & Automation.target_id.in_(step_ids))
    if metric_ids:
        conditions.append((Automation.type == "metric") & Automation.target_id.in_(metric_ids))
    if not conditions:
        return 0
    condition = conditions[0] if len(conditions) == 1 else (conditions[0] | conditions[1])
    automation_ids = [
        row.id
        for row in db.query(Automation.id).filter(Automation.user_id == user.id, condition).all()
    ]
    if not automation_ids:
        return 0
    db.query(EventInteraction).filter(
        EventInteraction.user_id == user.id,
        EventInteraction.automation_id.in_(automation_ids),
    ).delete(synchronize_session=False)
    db.query(Automation).filter(Automation.id.in_(automation_ids)).delete(synchronize_session=False)
    return len(automation_ids)


def list_automations(db: Session, user: User) -> list[Automation]:
    return (
        db.query(Automation)
        .filter(Automation.user_id == user.id)
        .order_by(Automation.created_at.asc(), Automation.id.asc())
        .all()
    )


def automation_to_dict(automation: Automation) -> dict:
    return {
        "id": automation.id,
        "name": automation.name,
        "description": automation.description,
        "type": automation.type,
        "target_id": automation.target_id,
        "frequency_type": automation.frequency_type,
        "frequency_time": automation.frequency_time,
        "scheduled_date": automation.scheduled_date.isoformat() if automation.scheduled_date else None,
        "schedule": schedule_to_dict(schedule_from_row(automation)),
        "is_active": bool(automation.is_active),
        "created_at": automation.created_at.isoformat() if automation.created_at else None,
        "updated_at": automation.updated_at.isoformat() if automation.updated_at else None,
    }


# ─── Smart events ───


@dataclass(frozen=True)
class ResolvedTarget:
    goal_id: int
    step_id: int
    metric_id: int | None
    title: str
    description: str
    event_type: str


def resolve_target(db: Session, automation: Automation) -> ResolvedTarget | None:
    """Find the goal (and step/metric) an automation points at, or None."""
    metric = None
    if automation.type == "metric":
        metric = (
            db.query(Metric)
            .filter(Metric.id == automation.target_id, Metric.user_id == automation.user_id)
            .first()
        )
        if not metric or metric.step_id is None:
            return None
        step_id = metric.step_id
    elif automation.type == "step":
        step_id = automation.target_id
    else:
        return None

    step = (
        db.query(DailyStep)
        .filter(DailyStep.id == step_id, DailyStep.user_id == automation.user_id)
        .first()
    )
    if not step or step.goal_id is None:
        return None
    goal = db.query(Goal).filter(Goal.id == step.goal_id, Goal.user_id == automation.user_id).first()
    if not goal:
        return None

    if metric is not None:
        return ResolvedTarget(
            goal_id=goal.id,
            step_id=step.id,
            metric_id=metric.id,
            title=f"Update metric: {metric.name}",
            description=f'Record progress for step "{step.title}"',
            event_type="metric_update",
        )
    return ResolvedTarget(
        goal_id=goal.id,
        step_id=step.id,
        metric_id=None,
        title=f"Step reminder: {step.title}",
        description=f'Complete step "{step.title}"',
        event_type="step_reminder",
    )


def event_view(interaction: EventInteraction, automation: Automation, target: ResolvedTarget) -> dict:
    return {
        "id": interaction.id,
        "interaction_id": interaction.id,
        "automation_id": automation.id,
        "goal_id": target.goal_id,
        "title": target.title,
        "description": target.description,
        "completed": interaction.status == "completed",
        "status": interaction.status,
        "date": interaction.date.isoformat(),
        "is_important": False,
        "is_urgent": False,
        "event_type": target.event_type,
        "target_metric_id": target.metric_id,
        "target_step_id": target.step_id,
        "update_value": 0 if target.event_type == "metric_update" else None,
        "update_unit": None,
    }


def _insert_pending(db: Session, user: User, automation: Automation, day: date) -> EventInteraction | None:
    """Insert the pending row; None when a concurrent evaluation won the unique key."""
    interaction = EventInteraction(
        user_id=user.id,
        automation_id=automation.id,
        date=day,
        status="pending",
    )
    try:
        with db.begin_nested():
            db.add(interaction)
    except IntegrityError:
        logger.info(f"Interaction for automation {automation.id} on {day} already exists")
        return None
    return interaction


def evaluate_smart_events(db: Session, user: User, today: date) -> list[dict]:
    """Create today's pending interactions and return views for the new ones only.

    Safe to call on every page load: an automation that already has any
    interaction for ``today`` is left alone.
    """
    automations = (
        db.query(Automation)
        .filter(Automation.user_id == user.id, Automation.is_active.is_(True))
        .order_by(Automation.id.asc())
        .all()
    )
    handled = {
        row.automation_id
        for row in db.query(EventInteraction.automation_id)
        .filter(EventInteraction.user_id == user.id, EventInteraction.date == today)
        .all()
    }

    generated: list[dict] = []
    for automation in automations:
        if automation.id in handled:
            continue
        if not schedule_matches(schedule_from_row(automation), today):
            continue
        target = resolve_target(db, automation)
        if target is None:
            logger.warning(f"Skipping automation {automation.id}: target does not resolve to a goal")
            continue
        interaction = _insert_pending(db, user, automation, today)
        if interaction is None:
            continue
        generated.append(event_view(interaction, automation, target))
    db.flush()
    return generated


def list_pending_events(db: Session, user: User, today: date) -> list[dict]:
    rows = (
        db.query(EventInteraction, Automation)
        .join(Automation, Automation.id == EventInteraction.automation_id)
        .filter(
            EventInteraction.user_id == user.id,
            EventInteraction.date == today,
            EventInteraction.status == "pending",
        )
        .order_by(EventInteraction.id.asc())
        .all()
    )
    events: list[dict] = []
    for interaction, automation in rows:
        target = resolve_target(db, automation)
        if target is None:
            continue
        events.append(event_view(interaction, automation, target))
    return events


def complete_interaction(db: Session, user: User, interaction_id) -> EventInteraction:
    interaction = get_owned_interaction(db, user.id, interaction_id)
    if interaction.status != "completed":
        interaction.status = "completed"
        interaction.completed_at = datetime.now(timezone.utc)
        interaction.postponed_to = None
        interaction.updated_at = datetime.now(timezone.utc)
        db.flush()
    return interaction


def postpone_interaction(
    db: Session,
    user: User,
    interaction_id,
    today: date,
    postpone_to: date | None = None,
) -> EventInteraction:
    interaction = get_owned_interaction(db, user.id, interaction_id)
    target_day = postpone_to or tomorrow_of(today)
    interaction.status = "postponed"
    interaction.postponed_to = target_day
    interaction.updated_at = datetime.now(timezone.utc)
    db.flush()
    return interaction


def interaction_to_dict(interaction: EventInteraction) -> dict:
    return {
        "id": interaction.id,
        "automation_id": interaction.automation_id,
        "date": interaction.date.isoformat() if interaction.date else None,
        "status": interaction.status,
        "completed_at": interaction.completed_at.isoformat() if interaction.completed_at else None,
        "postponed_to": interaction.postponed_to.isoformat() if interaction.postponed_to else None,
    }


# ─── Step generation ───


def generate_automated_steps(db: Session, user: User, today: date) -> list[DailyStep]:
    """Create today's step for every matching step automation that lacks one."""
    automations = (
        db.query(Automation)
        .filter(
            Automation.user_id == user.id,
            Automation.is_active.is_(True),
            Automation.type == "step",
        )
        .order_by(Automation.id.asc())
        .all()
    )
    created: list[DailyStep] = []
    touched_goals: dict[int, Goal] = {}
    for automation in automations:
        if not schedule_matches(schedule_from_row(automation), today):
            continue
        target = resolve_target(db, automation)
        if target is None:
            logger.warning(f"Skipping step generation for automation {automation.id}: no goal")
            continue
        exists = (
            db.query(DailyStep.id)
            .filter(
                DailyStep.user_id == user.id,
                DailyStep.goal_id == target.goal_id,
                DailyStep.title == automation.name,
                DailyStep.date == today,
            )
            .first()
        )
        if exists:
            continue
        step = DailyStep(
            user_id=user.id,
            goal_id=target.goal_id,
            title=automation.name,
            description=automation.description or "",
            date=today,
            completed=False,
        )
        db.add(step)
        created.append(step)
        goal = db.query(Goal).filter(Goal.id == target.goal_id).first()
        if goal is not None:
            touched_goals[goal.id] = goal
    db.flush()
    for goal in touched_goals.values():
        refresh_goal_progress(db, goal)
    return created


def run_step_generation(db: Session, reference_utc: datetime) -> list[dict]:
    """Generate today's automated steps for every user, isolating failures per user."""
    results: list[dict] = []
    for user in db.query(User).order_by(User.id.asc()).all():
        user_id = user.id
        try:
            created = generate_automated_steps(db, user, user_today(user, reference_utc))
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception("Step generation failed for user %s", user_id)
            results.append({"user_id": user_id, "success": False, "created": 0, "error": str(exc)})
            continue
        results.append({"user_id": user_id, "success": True, "created": len(created), "error": None})
    logger.info(
        "Step generation finished: %d user(s), %d step(s) created",
        len(results),
        sum(item["created"] for item in results),
    )
    return results
