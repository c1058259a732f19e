"""
FastAPI dependencies

Reusable dependencies injected into route handlers:
- get_db: a database session per request, closed when the request ends
- get_current_user: the user behind the ``Authorization: Bearer`` JWT
- get_optional_user: same, but anonymous requests get None
- get_gateway / get_plant_ai: external clients, overridable in tests
"""
from collections.abc import Generator
from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from plantscan.api.errors import unauthorized
from plantscan.api.schemas import TokenPayload
from plantscan.core import security
from plantscan.core.config import settings
from plantscan.core.db import engine
from plantscan.integrations.plant_ai import PlantAIClient, get_plant_ai_client
from plantscan.integrations.yookassa import YooKassaClient, get_yookassa_client
from plantscan.models import User

# auto_error=False: a missing header is reported as our own 401 body
bearer_scheme = HTTPBearer(auto_error=False)

NOT_AUTHENTICATED = "Вы не авторизованы. Войдите в аккаунт, чтобы продолжить."


def get_db() -> Generator[Session, None, None]:
    """
    Database session for one request

    Yields:
        Session: closed automatically once the response is sent
    """
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def _user_from_token(session: Session, token: HTTPAuthorizationCredentials) -> User | None:
    try:
        payload = jwt.decode(
            token.credentials, settings.SECRET_KEY, algorithms=[security.ALGORITHM]
        )
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        return None
    if not token_data.sub:
        return None
    try:
        user_id = int(token_data.sub)
    except ValueError:
        return None
    return session.get(User, user_id)


def get_current_user(session: SessionDep, token: TokenDep) -> User:
    """
    The signed-in user

    Raises:
        AppError: 401 when the token is missing, invalid or expired, or
            the user no longer exists
    """
    if token is None:
        raise unauthorized(NOT_AUTHENTICATED)
    user = _user_from_token(session, token)
    if user is None:
        raise unauthorized(NOT_AUTHENTICATED)
    return user


def get_optional_user(session: SessionDep, token: TokenDep) -> User | None:
    """The signed-in user, or None for anonymous or invalid credentials"""
    if token is None:
        return None
    return _user_from_token(session, token)


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]
GatewayDep = Annotated[YooKassaClient, Depends(get_yookassa_client)]
PlantAIDep = Annotated[PlantAIClient, Depends(get_plant_ai_client)]
