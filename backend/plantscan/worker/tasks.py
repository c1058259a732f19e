"""
Scheduled billing jobs

Same sweeps as the /billing/renew and /billing/expire cron endpoints, for
deployments that run the scheduler worker instead of an external cron.
"""
import logging

from sqlmodel import Session

from plantscan.core.db import engine
from plantscan.integrations.yookassa import get_yookassa_client
from plantscan.services.renewal_service import (
    expire_past_due_subscriptions,
    renew_due_subscriptions,
)

logger = logging.getLogger(__name__)


def renew_subscriptions() -> None:
    """Charge saved cards of subscriptions whose period has ended"""
    with Session(engine) as session:
        report = renew_due_subscriptions(session=session, gateway=get_yookassa_client())
    logger.info(
        "Renewal job finished: processed=%d renewed=%d failed=%d already_applied=%d",
        report.processed,
        report.renewed,
        report.failed,
        report.already_applied,
    )


def expire_subscriptions() -> None:
    """Cancel past_due subscriptions whose grace period is over"""
    with Session(engine) as session:
        expired = expire_past_due_subscriptions(session=session)
    logger.info("Expiry job finished: expired=%d", expired)
