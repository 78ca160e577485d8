import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import planning_service
from services.settings_service import user_today

router = APIRouter(prefix="/daily-planning", tags=["daily-planning"])


class PlanningUpsertRequest(BaseModel):
    date: Optional[dt.date] = None
    planned_steps: list[int]


class PlanningCompleteStepRequest(BaseModel):
    date: Optional[dt.date] = None
    step_id: int


@router.get("")
def get_planning(
    date: Optional[dt.date] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = planning_service.get_planning(db, user, date or user_today(user))
    return {"planning": planning_service.planning_to_dict(row) if row else None}


@router.post("")
def upsert_planning(
    req: PlanningUpsertRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        row = planning_service.upsert_planning(db, user, req.date or user_today(user), req.planned_steps)
    db.commit()
    return {"planning": planning_service.planning_to_dict(row)}


@router.post("/complete-step")
def complete_planned_step(
    req: PlanningCompleteStepRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        row = planning_service.mark_step_completed(db, user, req.date or user_today(user), req.step_id)
    db.commit()
    return {"planning": planning_service.planning_to_dict(row)}
