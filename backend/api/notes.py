from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import note_service

router = APIRouter(prefix="/notes", tags=["notes"])


class NoteCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    goal_id: Optional[int] = None


class NoteUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)


@router.get("")
def list_notes(
    goal_id: Optional[int] = None,
    standalone: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        notes = note_service.list_notes(db, user, goal_id=goal_id, standalone=standalone)
    return [note_service.note_to_dict(n) for n in notes]


@router.post("", status_code=201)
def create_note(
    req: NoteCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        note = note_service.create_note(db, user, **req.model_dump())
    db.commit()
    return note_service.note_to_dict(note)


@router.put("/{note_id}")
def update_note(
    note_id: int,
    req: NoteUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        note = note_service.update_note(db, user, note_id, **req.model_dump())
    db.commit()
    return note_service.note_to_dict(note)


@router.delete("/{note_id}")
def delete_note(
    note_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        note_service.delete_note(db, user, note_id)
    db.commit()
    return {"status": "deleted", "id": note_id}
