"""
User model
"""
from datetime import datetime

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, utc_now


class User(SQLModel, table=True):
    """
    Registered user

    Users sign in with a username and a password; an unknown username is
    registered on first sign-in.

    Fields:
    - id: primary key
    - username: unique login name
    - hashed_password: bcrypt hash
    - name: display name (defaults to the username)
    - email: optional contact address
    """
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(
        max_length=64,
        sa_column=Column(String(64), unique=True, index=True, nullable=False),
    )
    hashed_password: str | None = Field(default=None, max_length=255)
    name: str | None = Field(default=None, max_length=128)
    email: str | None = Field(default=None, max_length=255)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
