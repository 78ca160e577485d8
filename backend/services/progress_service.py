"""Goal progress aggregation.

Each goal draws its completion percentage from exactly one progress source.
Sources are modelled as a closed set of small frozen dataclasses so that a
source only carries the fields it actually uses; ``percentage_for`` is the one
place the arithmetic lives. Stored percentages are always clamped to [0, 100].
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

from sqlalchemy.orm import Session

from db.models import DailyStep, Goal, GoalMetric
from services.errors import InvalidInputError
from services.ownership import get_owned_goal

logger = logging.getLogger(__name__)

PROGRESS_TYPES = ("percentage", "count", "amount", "steps", "metrics", "combined")


@dataclass(frozen=True)
class PercentageProgress:
    value: float


@dataclass(frozen=True)
class CountProgress:
    current: float
    target: float | None


@dataclass(frozen=True)
class AmountProgress:
    current: float
    target: float | None


@dataclass(frozen=True)
class StepsProgress:
    completed: int
    total: int


@dataclass(frozen=True)
class MetricsProgress:
    # (current_value, target_value) per goal metric
    readings: tuple[tuple[float | None, float | None], ...] = ()


@dataclass(frozen=True)
class CombinedProgress:
    metrics: MetricsProgress
    steps: StepsProgress


ProgressSource = Union[
    PercentageProgress,
    CountProgress,
    AmountProgress,
    StepsProgress,
    MetricsProgress,
    CombinedProgress,
]


def clamp_pct(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return max(0.0, min(100.0, number))


def ratio_pct(current, target) -> float:
    if current is None or target is None:
        return 0.0
    try:
        target_f = float(target)
        current_f = float(current)
    except (TypeError, ValueError):
        return 0.0
    if not target_f > 0:
        return 0.0
    return clamp_pct(current_f / target_f * 100.0)


def percentage_for(source: ProgressSource) -> float:
    if isinstance(source, PercentageProgress):
        return clamp_pct(source.value)
    if isinstance(source, (CountProgress, AmountProgress)):
        return ratio_pct(source.current, source.target)
    if isinstance(source, StepsProgress):
        if source.total <= 0:
            return 0.0
        return clamp_pct(source.completed / source.total * 100.0)
    if isinstance(source, MetricsProgress):
        if not source.readings:
            return 0.0
        # Each metric is clamped on its own so one overshoot cannot mask the rest.
        per_metric = [ratio_pct(current, target) for current, target in source.readings]
        return clamp_pct(sum(per_metric) / len(per_metric))
    if isinstance(source, CombinedProgress):
        return clamp_pct(0.5 * percentage_for(source.metrics) + 0.5 * percentage_for(source.steps))
    raise TypeError(f"Unsupported progress source: {type(source).__name__}")


def _require_number(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{field} must be a number")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise InvalidInputError(f"{field} must be a finite number")
    return number


def steps_source(db: Session, goal: Goal) -> StepsProgress:
    steps = (
        db.query(DailyStep.completed)
        .filter(DailyStep.goal_id == goal.id, DailyStep.user_id == goal.user_id)
        .all()
    )
    completed = sum(1 for row in steps if bool(row.completed))
    return StepsProgress(completed=completed, total=len(steps))


def metrics_source(db: Session, goal: Goal) -> MetricsProgress:
    rows = (
        db.query(GoalMetric.current_value, GoalMetric.target_value)
        .filter(GoalMetric.goal_id == goal.id, GoalMetric.user_id == goal.user_id)
        .order_by(GoalMetric.id.asc())
        .all()
    )
    return MetricsProgress(readings=tuple((row.current_value, row.target_value) for row in rows))


def combined_source(db: Session, goal: Goal) -> CombinedProgress:
    return CombinedProgress(metrics=metrics_source(db, goal), steps=steps_source(db, goal))


def _store(goal: Goal, source: ProgressSource) -> Goal:
    goal.progress_percentage = percentage_for(source)
    goal.updated_at = datetime.now(timezone.utc)
    return goal


def set_percentage(db: Session, user_id: int, goal_id, value) -> Goal:
    number = _require_number(value, "progress")
    goal = get_owned_goal(db, user_id, goal_id)
    _store(goal, PercentageProgress(value=number))
    db.flush()
    return goal


def _set_counted(db: Session, user_id: int, goal_id, current, source_cls) -> Goal:
    number = _require_number(current, "current")
    goal = get_owned_goal(db, user_id, goal_id)
    goal.progress_current = number
    _store(goal, source_cls(current=number, target=goal.progress_target))
    db.flush()
    return goal


def set_count(db: Session, user_id: int, goal_id, current) -> Goal:
    return _set_counted(db, user_id, goal_id, current, CountProgress)


def set_amount(db: Session, user_id: int, goal_id, current) -> Goal:
    return _set_counted(db, user_id, goal_id, current, AmountProgress)


def set_from_steps(db: Session, user_id: int, goal_id) -> Goal:
    goal = get_owned_goal(db, user_id, goal_id)
    _store(goal, steps_source(db, goal))
    db.flush()
    return goal


def set_from_goal_metrics(db: Session, user_id: int, goal_id) -> Goal:
    goal = get_owned_goal(db, user_id, goal_id)
    _store(goal, metrics_source(db, goal))
    db.flush()
    return goal


def set_combined(db: Session, user_id: int, goal_id) -> Goal:
    goal = get_owned_goal(db, user_id, goal_id)
    _store(goal, combined_source(db, goal))
    db.flush()
    return goal


def refresh_goal_progress(db: Session, goal: Goal | None) -> Goal | None:
    """Recompute a goal after one of its steps or goal metrics changed.

    ``steps`` and ``metrics`` goals follow their own source; every other type
    takes the 50/50 blend so manually tracked goals stay live too.
    """
    if goal is None:
        return None
    db.flush()
    if goal.progress_type == "steps":
        source: ProgressSource = steps_source(db, goal)
    elif goal.progress_type == "metrics":
        source = metrics_source(db, goal)
    else:
        source = combined_source(db, goal)
    _store(goal, source)
    db.flush()
    logger.debug("Refreshed goal %s progress to %.2f", goal.id, goal.progress_percentage)
    return goal


def initial_percentage(progress_type: str, current, target) -> float:
    """Percentage for a freshly created goal, before any steps or metrics exist."""
    if progress_type == "percentage":
        return clamp_pct(current)
    if progress_type in {"count", "amount"}:
        return ratio_pct(current, target)
    return 0.0
