from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import Area, User
from services.ownership import get_owned_area

router = APIRouter(prefix="/areas", tags=["areas"])


def _area_to_dict(area: Area) -> dict:
    return {
        "id": area.id,
        "name": area.name,
        "description": area.description,
        "color": area.color,
        "icon": area.icon,
        "sort_order": area.sort_order,
        "created_at": area.created_at.isoformat() if area.created_at else None,
    }


class AreaCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    color: str = "#3B82F6"
    icon: Optional[str] = None
    sort_order: Optional[int] = None


class AreaUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    sort_order: Optional[int] = None


@router.get("")
def list_areas(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    areas = (
        db.query(Area)
        .filter(Area.user_id == user.id)
        .order_by(Area.sort_order.asc(), Area.id.asc())
        .all()
    )
    return [_area_to_dict(a) for a in areas]


@router.post("", status_code=201)
def create_area(
    req: AreaCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sort_order = req.sort_order
    if sort_order is None:
        sort_order = db.query(Area).filter(Area.user_id == user.id).count()
    area = Area(
        user_id=user.id,
        name=req.name.strip(),
        description=req.description,
        color=req.color,
        icon=req.icon,
        sort_order=sort_order,
    )
    db.add(area)
    db.commit()
    db.refresh(area)
    return _area_to_dict(area)


@router.put("/{area_id}")
def update_area(
    area_id: int,
    req: AreaUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        area = get_owned_area(db, user.id, area_id)
    if req.name is not None:
        area.name = req.name.strip()
    if req.description is not None:
        area.description = req.description
    if req.color is not None:
        area.color = req.color
    if req.icon is not None:
        area.icon = req.icon
    if req.sort_order is not None:
        area.sort_order = req.sort_order
    area.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(area)
    return _area_to_dict(area)


@router.delete("/{area_id}")
def delete_area(
    area_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        area = get_owned_area(db, user.id, area_id)
    # Goals outlive their area; the relationship nulls their area_id.
    db.delete(area)
    db.commit()
    return {"status": "deleted", "id": area_id}
