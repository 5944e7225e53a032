"""
Password hashing, bearer tokens and the request-level identity dependencies.

Tokens carry ``sub`` (user id) and ``role``; the user row is re-read on every
request so a deleted identity stops authenticating immediately.
"""
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.config import get_settings
from healthcard.db.postgres import get_db
from healthcard.exceptions import AuthenticationError, AuthorizationError
from healthcard.models.user import User, UserRole

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)
bearer_scheme = HTTPBearer(auto_error=False)


class TokenClaims(BaseModel):
    sub: UUID
    role: UserRole


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: str


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def dummy_verify() -> None:
    """Spend the same effort as a real verification when there is no hash to check."""
    pwd_context.dummy_verify()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def issue_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    claims = {
        "sub": str(user.id),
        "role": user.role.value,
        "exp": datetime.utcnow() + lifetime,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_token_for_user(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=issue_token(user),
        role=user.role.value,
        user_id=str(user.id),
    )


def read_token(token: str) -> TokenClaims:
    """Verify signature and expiry; any failure is an AuthenticationError."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return TokenClaims.model_validate(payload)
    except (JWTError, ValueError):
        raise AuthenticationError("Invalid token")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthenticationError("Access token required")

    claims = read_token(credentials.credentials)
    user = (await db.execute(select(User).where(User.id == claims.sub))).scalar_one_or_none()
    if user is None:
        raise AuthenticationError("User not found")
    return user


def require_role(*roles: UserRole):
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise AuthorizationError(
                f"Role {current_user.role.value} not authorized. Required: {[r.value for r in roles]}"
            )
        return current_user
    return role_checker
