"""
Scan model
"""
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Integer, Text
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, utc_now


class Scan(SQLModel, table=True):
    """
    One plant identification

    Fields:
    - user_id: owner
    - image_url: the uploaded photo as a data URL
    - result: model answer (plantFound, plantName, healthCondition,
      recommendations, reason)
    - plant_found: whether a plant was recognized; only these scans count
      against the free tier and appear in the history
    - is_favorite: user bookmark
    """
    __tablename__ = "scans"
    __table_args__ = (Index("ix_scans_user_plant_found", "user_id", "plant_found"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    image_url: str = Field(sa_column=Column(Text, nullable=False))
    result: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    plant_found: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    is_favorite: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
