"""Time-trigger entry point for the reminder jobs.

An external scheduler calls ``GET /cron/master`` (hourly or at the listed
UTC hours) with ``Authorization: Bearer <CRON_SECRET>``.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, status

from ..core import CronDep, SessionDep, SessionFactoryDep
from ..jobs.reminder_cron import ReminderConfig, ReminderScheduler, jobs_for, run_jobs
from ..services.entities import SqlEntityStore
from ..services.notification_service import build_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/master")
async def master_cron(
    _: CronDep,
    session: SessionDep,
    session_factory: SessionFactoryDep,
    job: str | None = Query(default=None, description="daily-briefing, site-log-reminder, task-reminders or all"),
):
    """Run whichever job is due this UTC hour, or the one named by ``job``."""
    now = datetime.now(timezone.utc)
    try:
        jobs = jobs_for(job, now)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not jobs:
        logger.info(f"No reminder job scheduled for {now.hour}:00 UTC")
        return {"success": True, "message": f"No job scheduled for hour {now.hour} UTC", "results": {}}

    scheduler = ReminderScheduler(
        SqlEntityStore(session),
        build_dispatcher(session_factory),
        config=ReminderConfig.from_settings(),
    )
    results = await run_jobs(scheduler, jobs)
    return {
        "success": all(r["success"] for r in results.values()),
        "message": f"Ran {', '.join(jobs)}",
        "results": results,
    }
