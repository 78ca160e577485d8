"""Per-user, per-day planning ledger."""
from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import DailyPlanning, DailyStep, User
from services.errors import NotFoundError
from utils.json_utils import int_list, json_dump


def _unique_ids(step_ids) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for step_id in int_list(step_ids):
        if step_id in seen:
            continue
        seen.add(step_id)
        ordered.append(step_id)
    return ordered


def _require_owned_steps(db: Session, user: User, step_ids: list[int]) -> None:
    if not step_ids:
        return
    owned = {
        row.id
        for row in db.query(DailyStep.id)
        .filter(DailyStep.user_id == user.id, DailyStep.id.in_(step_ids))
        .all()
    }
    if len(owned) != len(set(step_ids)):
        raise NotFoundError("Step not found")


def get_planning(db: Session, user: User, day: date) -> DailyPlanning | None:
    return (
        db.query(DailyPlanning)
        .filter(DailyPlanning.user_id == user.id, DailyPlanning.date == day)
        .first()
    )


def planned_ids(row: DailyPlanning) -> list[int]:
    return int_list(row.planned_steps)


def completed_ids(row: DailyPlanning) -> list[int]:
    return int_list(row.completed_steps)


def _get_or_insert(db: Session, user: User, day: date) -> DailyPlanning:
    row = get_planning(db, user, day)
    if row:
        return row
    row = DailyPlanning(user_id=user.id, date=day, planned_steps="[]", completed_steps="[]")
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        # Another request created the row first; use theirs.
        row = get_planning(db, user, day)
        if row is None:
            raise
    return row


def upsert_planning(db: Session, user: User, day: date, step_ids, *, verify_ownership: bool = True) -> DailyPlanning:
    """Replace the planned list for ``day``; completed steps are left untouched."""
    ordered = _unique_ids(step_ids)
    if verify_ownership:
        _require_owned_steps(db, user, ordered)
    row = _get_or_insert(db, user, day)
    row.planned_steps = json_dump(ordered)
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return row


def reset_planning(db: Session, user: User, day: date) -> DailyPlanning:
    row = _get_or_insert(db, user, day)
    row.planned_steps = "[]"
    row.completed_steps = "[]"
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return row


def mark_step_completed(db: Session, user: User, day: date, step_id) -> DailyPlanning:
    ids = _unique_ids([step_id])
    if not ids:
        raise NotFoundError("Step not found")
    _require_owned_steps(db, user, ids)
    row = get_planning(db, user, day)
    if not row:
        raise NotFoundError("Daily planning not found")
    completed = completed_ids(row)
    if ids[0] not in completed:
        completed.append(ids[0])
        row.completed_steps = json_dump(completed)
        row.updated_at = datetime.now(timezone.utc)
        db.flush()
    return row


def planning_to_dict(row: DailyPlanning) -> dict:
    return {
        "id": row.id,
        "date": row.date.isoformat() if row.date else None,
        "planned_steps": planned_ids(row),
        "completed_steps": completed_ids(row),
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
