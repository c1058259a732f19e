"""
Billing scheduler

Runs the renewal and expiry sweeps every hour.
"""
import logging
from datetime import timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from plantscan.worker.tasks import expire_subscriptions, renew_subscriptions

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_scheduler() -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        renew_subscriptions,
        CronTrigger(minute=0),
        id="renew_subscriptions",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    # Half an hour after the renewal sweep.
    scheduler.add_job(
        expire_subscriptions,
        CronTrigger(minute=30),
        id="expire_subscriptions",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def main() -> None:
    scheduler = build_scheduler()
    logger.info("Scheduler started. Renewal runs hourly at :00 UTC, expiry at :30 UTC.")
    scheduler.start()


if __name__ == "__main__":
    main()
