"""
Seed data

Creates the promo codes listed in INITIAL_PROMO_CODES. Runs after the
migrations; safe to run on every deploy.
"""
import logging

from sqlmodel import Session

from plantscan.core.db import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init() -> None:
    with Session(engine) as session:
        init_db(session)


def main() -> None:
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":  # pragma: no cover
    main()
