"""
Password hashing, JWT issuance and the authenticated-principal dependency.

The booking engine only needs (id, role, concession balance); this module
is the collaborator that supplies it.
"""

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import Forbidden, Unauthenticated
from app.core.logging import bind_principal, get_logger
from app.db.session import get_db
from app.models.enums import UserRole
from app.models.user import User
from app.services.interfaces import Principal

logger = get_logger(__name__)
settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried in `sub`, or raise Unauthenticated."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired. Please log in again")
    except jwt.PyJWTError:
        raise Unauthenticated("Token verification failed")

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise Unauthenticated("Token verification failed")
    return int(subject)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise Unauthenticated("No token provided")

    user_id = decode_access_token(credentials.credentials)
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("auth_unknown_user", user_id=user_id)
        raise Unauthenticated("User not found")
    if not user.is_active:
        raise Unauthenticated("Your account has been disabled")

    bind_principal(user.id, user.role)
    return user


async def get_current_principal(user: User = Depends(get_current_user)) -> Principal:
    return Principal(id=user.id, role=UserRole(user.role), concession_balance=user.concessions)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Admin access required")
    return principal
