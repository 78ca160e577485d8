import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.errors import service_errors
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services import automation_service
from services.settings_service import user_today

router = APIRouter(prefix="/smart-events", tags=["smart-events"])
logger = logging.getLogger(__name__)


class InteractionCompleteRequest(BaseModel):
    interaction_id: int


class InteractionPostponeRequest(BaseModel):
    interaction_id: int
    postpone_to: Optional[date] = None


@router.get("")
def list_smart_events(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    today = user_today(user)
    generated = automation_service.evaluate_smart_events(db, user, today)
    db.commit()
    if generated:
        logger.info(f"Generated {len(generated)} smart event(s) for user {user.id}")
    events = automation_service.list_pending_events(db, user, today)
    return {"events": events, "generated": len(generated)}


@router.post("/complete")
def complete_smart_event(
    req: InteractionCompleteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        interaction = automation_service.complete_interaction(db, user, req.interaction_id)
    db.commit()
    return automation_service.interaction_to_dict(interaction)


@router.post("/postpone")
def postpone_smart_event(
    req: InteractionPostponeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with service_errors():
        interaction = automation_service.postpone_interaction(
            db, user, req.interaction_id, user_today(user), req.postpone_to
        )
    db.commit()
    return automation_service.interaction_to_dict(interaction)
