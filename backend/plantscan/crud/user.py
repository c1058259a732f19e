"""User CRUD operations"""
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from plantscan.core.security import get_password_hash, verify_password
from plantscan.models import User


def get_by_username(*, session: Session, username: str) -> User | None:
    """Look a user up by login name"""
    statement = select(User).where(User.username == username)
    return session.exec(statement).first()


def create(
    *,
    session: Session,
    username: str,
    password: str,
    name: str | None = None,
    email: str | None = None,
) -> User:
    """Create a user with a hashed password"""
    user = User(
        username=username,
        hashed_password=get_password_hash(password),
        name=name or username,
        email=email,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def authenticate_or_register(*, session: Session, username: str, password: str) -> User | None:
    """
    Sign a user in, registering an unknown username on the fly

    Returns:
        the user, or None when the username exists and the password is wrong
    """
    user = get_by_username(session=session, username=username)
    if user is None:
        try:
            return create(session=session, username=username, password=password)
        except IntegrityError:
            # Registered concurrently by another request.
            session.rollback()
            user = get_by_username(session=session, username=username)
            if user is None:
                raise

    if not user.hashed_password or not verify_password(password, user.hashed_password):
        return None
    return user
