from datetime import date
from typing import Annotated, Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import goal_service, progress_service, step_service
from services.ownership import get_owned_goal
from services.settings_service import user_today

router = APIRouter(prefix="/goals", tags=["goals"])


class GoalCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: Optional[str] = None
    target_date: Optional[date] = None
    priority: str = "meaningful"
    goal_type: str = "outcome"
    progress_type: str = "percentage"
    progress_target: Optional[float] = None
    progress_current: Optional[float] = None
    progress_unit: Optional[str] = None
    area_id: Optional[int] = None
    icon: Optional[str] = None


class GoalUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    target_date: Optional[date] = None
    clear_target_date: bool = False
    status: Optional[str] = None
    priority: Optional[str] = None
    goal_type: Optional[str] = None
    progress_type: Optional[str] = None
    progress_target: Optional[float] = None
    progress_unit: Optional[str] = None
    area_id: Optional[int] = None
    icon: Optional[str] = None


class _ProgressBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PercentageProgressUpdate(_ProgressBase):
    progress_type: Literal["percentage"]
    value: float


class CountProgressUpdate(_ProgressBase):
    progress_type: Literal["count"]
    current: float


class AmountProgressUpdate(_ProgressBase):
    progress_type: Literal["amount"]
    current: float


class StepsProgressUpdate(_ProgressBase):
    progress_type: Literal["steps"]


class MetricsProgressUpdate(_ProgressBase):
    progress_type: Literal["metrics"]


class CombinedProgressUpdate(_ProgressBase):
    progress_type: Literal["combined"]


ProgressUpdate = Annotated[
    Union[
        PercentageProgressUpdate,
        CountProgressUpdate,
        AmountProgressUpdate,
        StepsProgressUpdate,
        MetricsProgressUpdate,
        CombinedProgressUpdate,
    ],
    Field(discriminator="progress_type"),
]


@router.get("")
def list_goals(
    status: str = "all",
    include_steps: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    goals = goal_service.list_goals(db, user, user_today(user), status=status)
    db.commit()
    if not include_steps:
        return [goal_service.goal_to_dict(g) for g in goals]
    steps = step_service.steps_by_goal(db, user, [g.id for g in goals])
    return [
        {**goal_service.goal_to_dict(g), "steps": [step_service.step_to_dict(s) for s in steps[g.id]]}
        for g in goals
    ]


@router.get("/{goal_id}")
def get_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = get_owned_goal(db, user.id, goal_id)
    return goal_service.goal_to_dict(goal)


@router.post("", status_code=201)
def create_goal(
    req: GoalCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = goal_service.create_goal(db, user, user_today(user), **req.model_dump())
    db.commit()
    db.refresh(goal)
    return goal_service.goal_to_dict(goal)


@router.put("/{goal_id}")
def update_goal(
    goal_id: int,
    req: GoalUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = goal_service.update_goal(db, user, goal_id, user_today(user), **req.model_dump())
    db.commit()
    db.refresh(goal)
    return goal_service.goal_to_dict(goal)


@router.delete("/{goal_id}")
def delete_goal(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal_service.delete_goal(db, user, goal_id)
    db.commit()
    return {"status": "deleted", "id": goal_id}


@router.put("/{goal_id}/progress")
def update_goal_progress(
    goal_id: int,
    req: ProgressUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        if isinstance(req, PercentageProgressUpdate):
            goal = progress_service.set_percentage(db, user.id, goal_id, req.value)
        elif isinstance(req, CountProgressUpdate):
            goal = progress_service.set_count(db, user.id, goal_id, req.current)
        elif isinstance(req, AmountProgressUpdate):
            goal = progress_service.set_amount(db, user.id, goal_id, req.current)
        elif isinstance(req, StepsProgressUpdate):
            goal = progress_service.set_from_steps(db, user.id, goal_id)
        elif isinstance(req, MetricsProgressUpdate):
            goal = progress_service.set_from_goal_metrics(db, user.id, goal_id)
        else:
            goal = progress_service.set_combined(db, user.id, goal_id)
    db.commit()
    db.refresh(goal)
    return goal_service.goal_to_dict(goal)


@router.post("/{goal_id}/progress/combined")
def refresh_combined_progress(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal = progress_service.set_combined(db, user.id, goal_id)
    db.commit()
    return {"status": "ok", "id": goal.id, "progress_percentage": goal.progress_percentage}
