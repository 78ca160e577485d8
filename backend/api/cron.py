from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.utils import require_cron_secret
from db.database import get_db
from services.automation_service import run_step_generation
from services.daily_reset_service import run_daily_reset
from utils.datetime_utils import utcnow

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.post("/daily-reset")
def daily_reset(db: Session = Depends(get_db)):
    now = utcnow()
    results = run_daily_reset(db, now)
    return {
        "success": True,
        "timestamp": now.isoformat(),
        "processed_users": len(results),
        "failed_users": sum(1 for r in results if not r.success),
        "results": [r.to_dict() for r in results],
    }


@router.post("/generate-steps")
def generate_steps(db: Session = Depends(get_db)):
    now = utcnow()
    results = run_step_generation(db, now)
    return {
        "success": True,
        "timestamp": now.isoformat(),
        "processed_users": len(results),
        "generated_steps": sum(item["created"] for item in results),
        "results": results,
    }
