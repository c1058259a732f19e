"""
Database connection

Creates the engine (connection pool) shared by the API and the worker.

Notes:
- Tables are created by Alembic migrations, never here
- Import plantscan.models before using the engine so that every table
  and relationship is registered on SQLModel.metadata
"""
from sqlmodel import Session, create_engine

from plantscan.core.config import settings

engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, pool_pre_ping=True)


def init_db(session: Session) -> None:
    """
    Seed initial data

    Creates the promo codes listed in ``INITIAL_PROMO_CODES``. Codes that
    already exist are left untouched, so the hook is safe to re-run.
    """
    # Imported lazily: crud imports models, models import nothing from here.
    from plantscan import crud

    for code, percent_off, max_uses in parse_promo_seed(settings.INITIAL_PROMO_CODES):
        if crud.get_promo_code(session=session, code=code):
            continue
        crud.create_promo_code(
            session=session,
            code=code,
            percent_off=percent_off,
            max_uses=max_uses,
        )


def parse_promo_seed(raw: str) -> list[tuple[str, int, int | None]]:
    """
    Parse ``CODE:PERCENT[:MAX_USES]`` entries separated by commas

    Raises:
        ValueError: on a malformed entry
    """
    entries: list[tuple[str, int, int | None]] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = chunk.split(":")
        if len(parts) not in (2, 3):
            raise ValueError(f"Invalid promo seed entry: {chunk!r}")
        percent_off = int(parts[1])
        if not 0 <= percent_off <= 100:
            raise ValueError(f"percent_off out of range in {chunk!r}")
        max_uses = int(parts[2]) if len(parts) == 3 else None
        entries.append((parts[0].strip().upper(), percent_off, max_uses))
    return entries
