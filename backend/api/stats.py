from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import stats_service
from services.settings_service import user_today

router = APIRouter(tags=["stats"])


class OptimumStatsRequest(BaseModel):
    planned_steps_count: int = Field(ge=0)
    completed_steps_count: int = Field(ge=0)
    total_steps_count: Optional[int] = Field(default=None, ge=0)


@router.get("/user-stats")
def get_user_stats(
    days: int = 30,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    history_days = max(1, min(days, 365))
    return {
        "streak": stats_service.streak_to_dict(stats_service.get_streak(db, user)),
        "step_stats": stats_service.step_statistics(db, user, user_today(user), history_days),
    }


@router.post("/user-stats")
def update_user_streak(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    streak = stats_service.update_user_streak(db, user, user_today(user))
    db.commit()
    return {"streak": stats_service.streak_to_dict(streak)}


@router.post("/optimum-stats")
def record_optimum_stats(
    req: OptimumStatsRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        row = stats_service.record_optimum_stats(
            db,
            user,
            user_today(user),
            planned=req.planned_steps_count,
            completed=req.completed_steps_count,
            total=req.total_steps_count,
        )
    db.commit()
    return {"stats": stats_service.daily_stats_to_dict(row), "optimum_deviation": row.optimum_deviation}
