from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.models import UserResponse
from auth.utils import get_current_user
from db.database import get_db
from db.models import User

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/complete-onboarding", response_model=UserResponse)
def complete_onboarding(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not user.has_completed_onboarding:
        user.has_completed_onboarding = True
        user.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(user)
    return user
