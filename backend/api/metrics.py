from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import goal_service, step_service

router = APIRouter(tags=["metrics"])


class MetricCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    type: str = "number"
    unit: Optional[str] = None
    target_value: Optional[float] = None
    current_value: float = 0.0


class StepMetricCreateRequest(MetricCreateRequest):
    step_id: int


class GoalMetricCreateRequest(MetricCreateRequest):
    goal_id: int


class MetricUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[str] = None
    unit: Optional[str] = None
    target_value: Optional[float] = None
    current_value: Optional[float] = None


def _changes(req: MetricUpdateRequest) -> dict:
    payload = req.model_dump()
    payload["metric_type"] = payload.pop("type")
    return payload


# ─── Step-scoped metrics ───


@router.get("/metrics")
def list_metrics(
    step_id: Optional[int] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [step_service.metric_to_dict(m) for m in step_service.list_metrics(db, user, step_id)]


@router.post("/metrics", status_code=201)
def create_metric(
    req: StepMetricCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        metric = step_service.create_metric(
            db,
            user,
            step_id=req.step_id,
            name=req.name,
            description=req.description,
            metric_type=req.type,
            unit=req.unit,
            target_value=req.target_value,
            current_value=req.current_value,
        )
    db.commit()
    return step_service.metric_to_dict(metric)


@router.put("/metrics/{metric_id}")
def update_metric(
    metric_id: int,
    req: MetricUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        metric = step_service.update_metric(db, user, metric_id, **_changes(req))
    db.commit()
    return step_service.metric_to_dict(metric)


@router.delete("/metrics/{metric_id}")
def delete_metric(
    metric_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        step_service.delete_metric(db, user, metric_id)
    db.commit()
    return {"status": "deleted", "id": metric_id}


# ─── Goal metrics ───


@router.get("/goal-metrics")
def list_goal_metrics(
    goal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        metrics = goal_service.list_goal_metrics(db, user, goal_id)
    return [goal_service.goal_metric_to_dict(m) for m in metrics]


@router.post("/goal-metrics", status_code=201)
def create_goal_metric(
    req: GoalMetricCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        metric = goal_service.create_goal_metric(
            db,
            user,
            goal_id=req.goal_id,
            name=req.name,
            description=req.description,
            metric_type=req.type,
            unit=req.unit,
            target_value=req.target_value,
            current_value=req.current_value,
        )
    db.commit()
    return goal_service.goal_metric_to_dict(metric)


@router.put("/goal-metrics/{metric_id}")
def update_goal_metric(
    metric_id: int,
    req: MetricUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        metric = goal_service.update_goal_metric(db, user, metric_id, **_changes(req))
    db.commit()
    return goal_service.goal_metric_to_dict(metric)


@router.delete("/goal-metrics/{metric_id}")
def delete_goal_metric(
    metric_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        goal_service.delete_goal_metric(db, user, metric_id)
    db.commit()
    return {"status": "deleted", "id": metric_id}
