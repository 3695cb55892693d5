"""
Scheduler Routes
Lets an external cron trigger the same jobs the ARQ worker runs
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..api_key import require_api_key
from ..database import get_db
from ..services import scheduler_jobs
from ..shared.actions import ActionError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scheduler"], dependencies=[Depends(require_api_key)])


@router.post("/scheduler-notifications")
async def run_scheduler_action(request: Request, db: Session = Depends(get_db)):
    """Actions: daily_summary, check_reminders, check_financial_due, check_financial_overdue,
    auto_complete_appointments, process_auto_follow_up"""
    try:
        body = await request.json()
    except ValueError as e:
        raise ActionError("Invalid JSON body") from e

    action = body.get("action") if isinstance(body, dict) else None
    if action not in scheduler_jobs.JOBS:
        raise ActionError("Invalid action")

    logger.info(f"⏱️ Scheduler action={action}")
    return await scheduler_jobs.run_job(db, action)
