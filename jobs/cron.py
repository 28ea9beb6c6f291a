"""
Cron entry points. The external scheduler (Render cron, systemd timer, k8s
CronJob) invokes one of these per tick; each runs in its own session.

    python -m jobs.cron sweep
    python -m jobs.cron reminders
    python -m jobs.cron dispatch
    python -m jobs.cron schedule    # print the crontab for CRON_SCHEDULE
"""
import asyncio
import logging
import sys

from config.settings import settings, DEV_SWEEP_BATCH_CAP_NIGHT
from database import AsyncSessionLocal
from jobs.handlers import enqueue_sweep_continuation
from jobs.scheduler import JobDispatcher
from services.expiration_sweeper import ExpirationSweeper, effective_batch_size
from services.reminder_service import ReminderService
from utils.clock import system_clock

logger = logging.getLogger(__name__)

# name -> (cron expression, entry point name)
CRON_SCHEDULE = {
    "sweep-expirations-midnight": ("0 0 * * *", "sweep"),
    "pre-expiry-reminders-daily-09utc": ("0 9 * * *", "reminders"),
    "dispatch-scheduled-jobs": ("* * * * *", "dispatch"),
}


async def sweep_expirations_job(clock=system_clock):
    batch_size = effective_batch_size(settings.sweep_batch_size_night, cap=DEV_SWEEP_BATCH_CAP_NIGHT)
    async with AsyncSessionLocal() as session:
        try:
            result = await ExpirationSweeper(session, clock).sweep(
                batch_size=batch_size, batch_cap=DEV_SWEEP_BATCH_CAP_NIGHT
            )
            await enqueue_sweep_continuation(session, clock, result, batch_size, DEV_SWEEP_BATCH_CAP_NIGHT)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return result


async def pre_expiry_reminders_job(clock=system_clock):
    async with AsyncSessionLocal() as session:
        try:
            result = await ReminderService(session, clock).send_pre_expiry_reminders(settings.reminder_window_list)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return result


async def dispatch_jobs_job(clock=system_clock):
    async with AsyncSessionLocal() as session:
        try:
            result = await JobDispatcher(session, clock).run_due()
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return result


ENTRY_POINTS = {
    "sweep": sweep_expirations_job,
    "reminders": pre_expiry_reminders_job,
    "dispatch": dispatch_jobs_job,
}


def crontab_lines():
    """Crontab entries for CRON_SCHEDULE, one per job."""
    return [
        f"{expression} python -m jobs.cron {entry_point}  # {name}"
        for name, (expression, entry_point) in CRON_SCHEDULE.items()
    ]


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv == ["schedule"]:
        print("\n".join(crontab_lines()))
        return 0
    if len(argv) != 1 or argv[0] not in ENTRY_POINTS:
        print(f"usage: python -m jobs.cron [{'|'.join(ENTRY_POINTS)}|schedule]", file=sys.stderr)
        return 2

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    from database import init_db

    async def _run():
        await init_db()
        return await ENTRY_POINTS[argv[0]]()

    result = asyncio.run(_run())
    logger.info(f"{argv[0]}: {result.model_dump()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
