from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import value_service

router = APIRouter(prefix="/values", tags=["values"])


class ValueCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class ValueUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class ExperienceRequest(BaseModel):
    experience: int


@router.get("")
def list_values(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [value_service.value_to_dict(v) for v in value_service.list_values(db, user)]


@router.post("", status_code=201)
def create_value(
    req: ValueCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        value = value_service.create_value(db, user, **req.model_dump())
    db.commit()
    return value_service.value_to_dict(value)


@router.put("/{value_id}")
def update_value(
    value_id: int,
    req: ValueUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        value = value_service.update_value(db, user, value_id, **req.model_dump())
    db.commit()
    return value_service.value_to_dict(value)


@router.delete("/{value_id}")
def delete_value(
    value_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        value_service.delete_value(db, user, value_id)
    db.commit()
    return {"status": "deleted", "id": value_id}


@router.post("/{value_id}/experience")
def add_experience(
    value_id: int,
    req: ExperienceRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        value = value_service.add_experience(db, user, value_id, req.experience)
    db.commit()
    return value_service.value_to_dict(value)
