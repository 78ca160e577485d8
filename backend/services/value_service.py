from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from db.models import User, Value
from services.errors import InvalidInputError
from services.ownership import get_owned_value
from services.validation import whole_number

# (minimum experience, level), highest first
LEVEL_THRESHOLDS = ((1000, 5), (750, 4), (500, 3), (250, 2))


def level_for_experience(experience: int) -> int:
    for minimum, level in LEVEL_THRESHOLDS:
        if experience >= minimum:
            return level
    return 1


def list_values(db: Session, user: User) -> list[Value]:
    return (
        db.query(Value)
        .filter(Value.user_id == user.id)
        .order_by(Value.is_custom.asc(), Value.level.desc(), Value.experience.desc(), Value.name.asc())
        .all()
    )


def create_value(
    db: Session,
    user: User,
    *,
    name: str,
    description: str | None = None,
    color: str | None = None,
    icon: str | None = None,
    is_custom: bool = True,
) -> Value:
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("name is required")
    value = Value(
        user_id=user.id,
        name=name,
        description=description,
        color=color or "#3B82F6",
        icon=icon or "star",
        is_custom=bool(is_custom),
        level=1,
        experience=0,
    )
    db.add(value)
    db.flush()
    return value


def update_value(db: Session, user: User, value_id, **changes) -> Value:
    value = get_owned_value(db, user.id, value_id)
    if changes.get("name") is not None:
        name = changes["name"].strip()
        if not name:
            raise InvalidInputError("name is required")
        value.name = name
    for key in ("description", "color", "icon"):
        if changes.get(key) is not None:
            setattr(value, key, changes[key])
    value.updated_at = datetime.now(timezone.utc)
    db.flush()
    return value


def delete_value(db: Session, user: User, value_id) -> None:
    value = get_owned_value(db, user.id, value_id)
    db.delete(value)
    db.flush()


def add_experience(db: Session, user: User, value_id, amount) -> Value:
    amount = whole_number(amount, "experience", low=1)
    value = get_owned_value(db, user.id, value_id)
    value.experience = int(value.experience or 0) + amount
    value.level = level_for_experience(value.experience)
    value.updated_at = datetime.now(timezone.utc)
    db.flush()
    return value


def value_to_dict(value: Value) -> dict:
    return {
        "id": value.id,
        "name": value.name,
        "description": value.description,
        "color": value.color,
        "icon": value.icon,
        "is_custom": bool(value.is_custom),
        "level": value.level,
        "experience": value.experience,
        "created_at": value.created_at.isoformat() if value.created_at else None,
    }
