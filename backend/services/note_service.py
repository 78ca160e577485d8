"""Free-form notes, either attached to a goal or standalone."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from db.models import Note, User
from services.errors import InvalidInputError
from services.ownership import get_owned_goal, get_owned_note


def _required_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInputError(f"{field} is required")
    return text


def list_notes(db: Session, user: User, goal_id=None, standalone: bool = False) -> list[Note]:
    """Newest first. ``standalone`` wins over ``goal_id``."""
    query = db.query(Note).filter(Note.user_id == user.id)
    if standalone:
        query = query.filter(Note.goal_id.is_(None))
    elif goal_id is not None:
        query = query.filter(Note.goal_id == get_owned_goal(db, user.id, goal_id).id)
    return query.order_by(Note.created_at.desc(), Note.id.desc()).all()


def create_note(db: Session, user: User, *, title: str, content: str, goal_id=None) -> Note:
    note = Note(
        user_id=user.id,
        goal_id=get_owned_goal(db, user.id, goal_id).id if goal_id is not None else None,
        title=_required_text(title, "title"),
        content=_required_text(content, "content"),
    )
    db.add(note)
    db.flush()
    return note


def update_note(db: Session, user: User, note_id, *, title: str | None = None, content: str | None = None) -> Note:
    note = get_owned_note(db, user.id, note_id)
    if title is not None:
        note.title = _required_text(title, "title")
    if content is not None:
        note.content = _required_text(content, "content")
    note.updated_at = datetime.now(timezone.utc)
    db.flush()
    return note


def delete_note(db: Session, user: User, note_id) -> None:
    note = get_owned_note(db, user.id, note_id)
    db.delete(note)
    db.flush()


def note_to_dict(note: Note) -> dict:
    return {
        "id": note.id,
        "goal_id": note.goal_id,
        "title": note.title,
        "content": note.content,
        "created_at": note.created_at.isoformat() if note.created_at else None,
        "updated_at": note.updated_at.isoformat() if note.updated_at else None,
    }
