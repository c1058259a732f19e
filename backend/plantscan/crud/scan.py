"""Scan CRUD operations"""
from typing import Any

from sqlmodel import Session, col, func, select

from plantscan.models import Scan


def create(
    *,
    session: Session,
    user_id: int,
    image_url: str,
    result: dict[str, Any],
    plant_found: bool,
) -> Scan:
    scan = Scan(user_id=user_id, image_url=image_url, result=result, plant_found=plant_found)
    session.add(scan)
    session.commit()
    session.refresh(scan)
    return scan


def count_plant_found(*, session: Session, user_id: int) -> int:
    """Number of scans in which a plant was recognized"""
    statement = (
        select(func.count())
        .select_from(Scan)
        .where(Scan.user_id == user_id, col(Scan.plant_found).is_(True))
    )
    return int(session.exec(statement).one())


def list_plant_found(*, session: Session, user_id: int) -> list[Scan]:
    """Scan history, newest first"""
    statement = (
        select(Scan)
        .where(Scan.user_id == user_id, col(Scan.plant_found).is_(True))
        .order_by(col(Scan.created_at).desc(), col(Scan.id).desc())
    )
    return list(session.exec(statement).all())


def get_owned(*, session: Session, scan_id: int, user_id: int) -> Scan | None:
    """A scan, only if it belongs to the user"""
    statement = select(Scan).where(Scan.id == scan_id, Scan.user_id == user_id)
    return session.exec(statement).first()


def toggle_favorite(*, session: Session, scan: Scan) -> Scan:
    scan.is_favorite = not scan.is_favorite
    session.add(scan)
    session.commit()
    session.refresh(scan)
    return scan
