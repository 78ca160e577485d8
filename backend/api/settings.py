from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import category_service, settings_service

router = APIRouter(tags=["settings"])


class UserSettingsUpdate(BaseModel):
    daily_steps_count: Optional[int] = None
    workflow: Optional[str] = None
    daily_reset_hour: Optional[int] = None
    timezone: Optional[str] = None


class CategorySettingsUpdate(BaseModel):
    short_term_days: int
    long_term_days: int


class NeededStepsSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    days_of_week: Optional[list[int]] = None
    time_hour: Optional[int] = None
    time_minute: Optional[int] = None


@router.get("/user-settings")
def get_user_settings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = settings_service.get_or_create_user_settings(db, user)
    db.commit()
    return settings_service.user_settings_to_dict(row)


@router.put("/user-settings")
def update_user_settings(
    req: UserSettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        row = settings_service.update_user_settings(
            db,
            user,
            daily_steps_count=req.daily_steps_count,
            workflow=req.workflow,
            daily_reset_hour=req.daily_reset_hour,
            timezone_name=req.timezone,
        )
    db.commit()
    return settings_service.user_settings_to_dict(row)


@router.get("/category-settings")
def get_category_settings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = category_service.get_or_create_category_settings(db, user)
    db.commit()
    return category_service.category_settings_to_dict(row)


@router.put("/category-settings")
def update_category_settings(
    req: CategorySettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        row = category_service.set_category_settings(
            db,
            user,
            req.short_term_days,
            req.long_term_days,
            settings_service.user_today(user),
        )
    db.commit()
    return category_service.category_settings_to_dict(row)


@router.get("/needed-steps-settings")
def get_needed_steps_settings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = settings_service.get_or_create_needed_steps_settings(db, user)
    db.commit()
    return settings_service.needed_steps_settings_to_dict(row)


@router.put("/needed-steps-settings")
def update_needed_steps_settings(
    req: NeededStepsSettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        row = settings_service.update_needed_steps_settings(
            db,
            user,
            enabled=req.enabled,
            days_of_week=req.days_of_week,
            time_hour=req.time_hour,
            time_minute=req.time_minute,
        )
    db.commit()
    return settings_service.needed_steps_settings_to_dict(row)
