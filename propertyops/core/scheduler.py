import asyncio

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlmodel import Session

from propertyops.core.context import begin_job, reset_context
from propertyops.core.errors import capture_exception
from propertyops.core.logging_config import get_logger
from propertyops.db import engine
from propertyops.services.preventive_tasks import GenerationSummary, generate_preventive_tasks

logger = get_logger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")

PREVENTIVE_JOB_ID = "job_generate_preventive_tasks"


def _run_preventive_generation() -> GenerationSummary:
    with Session(engine) as session:
        return generate_preventive_tasks(session)


async def job_generate_preventive_tasks():
    """
    Turn due preventive maintenance schedules into tasks.
    SQLModel sessions are sync, so the run happens in a worker thread.
    """
    ctx = begin_job(PREVENTIVE_JOB_ID)
    structlog.contextvars.bind_contextvars(request_id=ctx.request_id, job=ctx.job)
    logger.info("Preventive task job started")
    try:
        summary = await asyncio.to_thread(_run_preventive_generation)
        logger.info("Preventive task job finished", **summary.to_dict())
    except Exception as e:
        capture_exception(e, context={"job": PREVENTIVE_JOB_ID})
    finally:
        structlog.contextvars.unbind_contextvars("request_id", "job")
        reset_context()


def start_scheduler():
    # max_instances=1: a slow run never overlaps the next one
    # misfire_grace_time: a run missed by a restart still fires within 2h
    # coalesce: several missed runs collapse into one
    scheduler.add_job(
        job_generate_preventive_tasks,
        CronTrigger(hour=6, minute=0, timezone="UTC"),  # before the ops team starts
        id=PREVENTIVE_JOB_ID,
        max_instances=1,
        misfire_grace_time=7200,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started", jobs=[f"{PREVENTIVE_JOB_ID}: 06:00 UTC daily"])
