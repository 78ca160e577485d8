import datetime as dt
from typing import Annotated, Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import automation_service

router = APIRouter(prefix="/automations", tags=["automations"])


class _ScheduleBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DailyScheduleIn(_ScheduleBase):
    kind: Literal["daily"]


class WeeklyScheduleIn(_ScheduleBase):
    kind: Literal["weekly"]
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday


class MonthlyScheduleIn(_ScheduleBase):
    kind: Literal["monthly"]
    day_of_month: int = Field(ge=1, le=31)


class OneTimeScheduleIn(_ScheduleBase):
    kind: Literal["one_time"]
    on: dt.date


ScheduleIn = Annotated[
    Union[DailyScheduleIn, WeeklyScheduleIn, MonthlyScheduleIn, OneTimeScheduleIn],
    Field(discriminator="kind"),
]


def _to_schedule(schedule: Optional[ScheduleIn]) -> Optional[automation_service.Schedule]:
    if schedule is None:
        return None
    if isinstance(schedule, WeeklyScheduleIn):
        return automation_service.WeeklySchedule(day_of_week=schedule.day_of_week)
    if isinstance(schedule, MonthlyScheduleIn):
        return automation_service.MonthlySchedule(day_of_month=schedule.day_of_month)
    if isinstance(schedule, OneTimeScheduleIn):
        return automation_service.OneTimeSchedule(on=schedule.on)
    return automation_service.DailySchedule()


class AutomationCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    type: Literal["metric", "step"]
    target_id: int
    frequency_type: Literal["one-time", "recurring"] = "recurring"
    frequency_time: Optional[str] = None
    scheduled_date: Optional[dt.date] = None
    schedule: Optional[ScheduleIn] = None
    is_active: bool = True


class AutomationUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[Literal["metric", "step"]] = None
    target_id: Optional[int] = None
    frequency_type: Optional[Literal["one-time", "recurring"]] = None
    frequency_time: Optional[str] = None
    scheduled_date: Optional[dt.date] = None
    schedule: Optional[ScheduleIn] = None
    is_active: Optional[bool] = None


@router.get("")
def list_automations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [automation_service.automation_to_dict(a) for a in automation_service.list_automations(db, user)]


@router.post("", status_code=201)
def create_automation(
    req: AutomationCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        automation = automation_service.create_automation(
            db,
            user,
            name=req.name,
            description=req.description,
            automation_type=req.type,
            target_id=req.target_id,
            frequency_type=req.frequency_type,
            frequency_time=req.frequency_time,
            scheduled_date=req.scheduled_date,
            schedule=_to_schedule(req.schedule),
            is_active=req.is_active,
        )
    db.commit()
    return automation_service.automation_to_dict(automation)


@router.put("/{automation_id}")
def update_automation(
    automation_id: int,
    req: AutomationUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = req.model_dump(exclude={"schedule"})
    changes["automation_type"] = changes.pop("type")
    changes["schedule"] = _to_schedule(req.schedule)
    with service_errors():
        automation = automation_service.update_automation(db, user, automation_id, **changes)
    db.commit()
    return automation_service.automation_to_dict(automation)


@router.delete("/{automation_id}")
def delete_automation(
    automation_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        automation_service.delete_automation(db, user, automation_id)
    db.commit()
    return {"status": "deleted", "id": automation_id}
