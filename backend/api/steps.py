import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import step_service
from services.goal_service import goal_to_dict
from services.settings_service import user_today

router = APIRouter(prefix="/daily-steps", tags=["daily-steps"])


class StepCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    goal_id: Optional[int] = None
    metric_id: Optional[int] = None
    is_important: bool = False
    is_urgent: bool = False
    deadline: Optional[dt.date] = None
    step_type: str = "custom"
    custom_type_name: Optional[str] = None
    update_value: Optional[float] = None
    update_unit: Optional[str] = None


class StepUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    goal_id: Optional[int] = None
    metric_id: Optional[int] = None
    is_important: Optional[bool] = None
    is_urgent: Optional[bool] = None
    deadline: Optional[dt.date] = None
    step_type: Optional[str] = None
    custom_type_name: Optional[str] = None
    update_value: Optional[float] = None
    update_unit: Optional[str] = None


class StepToggleRequest(BaseModel):
    completed: bool


class StepPostponeRequest(BaseModel):
    new_date: Optional[dt.date] = None


class StepValueRequest(BaseModel):
    update_value: float


@router.get("")
def list_steps(
    date: Optional[dt.date] = None,
    goal_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    steps = step_service.list_steps(db, user, day=date, goal_id=goal_id)
    return [step_service.step_to_dict(s) for s in steps]


@router.post("", status_code=201)
def create_step(
    req: StepCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = req.model_dump()
    day = payload.pop("date") or user_today(user)
    with service_errors():
        step = step_service.create_step(db, user, day=day, **payload)
    db.commit()
    db.refresh(step)
    return step_service.step_to_dict(step)


@router.put("/{step_id}")
def update_step(
    step_id: int,
    req: StepUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = req.model_dump()
    payload["day"] = payload.pop("date")
    with service_errors():
        step = step_service.update_step(db, user, step_id, **payload)
    db.commit()
    db.refresh(step)
    return step_service.step_to_dict(step)


@router.delete("/{step_id}")
def delete_step(
    step_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        step_service.delete_step(db, user, step_id)
    db.commit()
    return {"status": "deleted", "id": step_id}


@router.post("/{step_id}/toggle")
def toggle_step(
    step_id: int,
    req: StepToggleRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        step, goal = step_service.toggle_step(db, user, step_id, req.completed)
    db.commit()
    body = {"step": step_service.step_to_dict(step)}
    if goal is not None:
        body["goal"] = goal_to_dict(goal)
    return body


@router.post("/{step_id}/complete")
def complete_step(
    step_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        step, goal = step_service.toggle_step(db, user, step_id, True)
    db.commit()
    body = {"step": step_service.step_to_dict(step)}
    if goal is not None:
        body["goal"] = goal_to_dict(goal)
    return body


@router.post("/{step_id}/postpone")
def postpone_step(
    step_id: int,
    req: StepPostponeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        step = step_service.postpone_step(db, user, step_id, user_today(user), req.new_date)
    db.commit()
    return step_service.step_to_dict(step)


@router.put("/{step_id}/value")
def update_step_value(
    step_id: int,
    req: StepValueRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        step = step_service.update_step_value(db, user, step_id, req.update_value)
    db.commit()
    return step_service.step_to_dict(step)
