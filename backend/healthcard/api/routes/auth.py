"""
Authentication routes.

Endpoints:
    POST /auth/register  - Self-registration as a patient or doctor
    POST /auth/login     - Exchange email + password for a JWT
    GET  /auth/me        - The authenticated user's profile
"""

from fastapi import APIRouter, Body, Depends, Request, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.db.postgres import get_db
from healthcard.exceptions import AuthenticationError, AuthorizationError
from healthcard.models.user import User, UserRole
from healthcard.api.middleware.auth import get_current_user, create_token_for_user
from healthcard.api.middleware.audit import log_audit
from healthcard.api.routes.users import UserResponse
from healthcard.services import user_service
from healthcard.services.user_service import IdentityVariant

router = APIRouter()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: str
    user: UserResponse


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    payload: IdentityVariant = Body(..., discriminator="role"),
    db: AsyncSession = Depends(get_db),
):
    """Register a patient or doctor account and return a token for it.

    Admin accounts are created by another admin or by the startup bootstrap.
    """
    if payload.role == UserRole.ADMIN.value:
        raise AuthorizationError("Admin accounts cannot be self-registered")

    user = await user_service.create_user(db, payload)
    await log_audit(
        db,
        actor=user,
        action="register",
        resource="user",
        resource_id=user.id,
        request=request,
    )
    token = create_token_for_user(user)
    return AuthResponse(**token.model_dump(), user=UserResponse.model_validate(user))


@router.post("/auth/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Authenticate by email and password. Unknown email and wrong password look the same."""
    user = await user_service.verify_credentials(db, payload.email, payload.password)
    if user is None:
        raise AuthenticationError("Invalid email or password")

    await log_audit(
        db,
        actor=user,
        action="login",
        resource="user",
        resource_id=user.id,
        request=request,
    )
    token = create_token_for_user(user)
    return AuthResponse(**token.model_dump(), user=UserResponse.model_validate(user))


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
