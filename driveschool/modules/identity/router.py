"""Identity API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from driveschool.modules.identity.schemas import AccessToken, LoginRequest, UserCreate, UserRead
from driveschool.modules.identity.service import IdentityService, get_current_user, get_identity_service

router = APIRouter(prefix="/identity", tags=["identity"])


@router.post("/auth/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserCreate,
    service: IdentityService = Depends(get_identity_service),
) -> UserRead:
    """Register a new student or teacher account."""
    user = await service.register(payload)
    return UserRead.model_validate(user)


@router.post("/auth/login", response_model=AccessToken)
async def login(
    payload: LoginRequest,
    service: IdentityService = Depends(get_identity_service),
) -> AccessToken:
    """Sign in by email/password and return a bearer token."""
    return await service.login(payload)


@router.get("/users/me", response_model=UserRead)
async def get_me(current_user=Depends(get_current_user)) -> UserRead:
    """Return profile of authenticated user."""
    return UserRead.model_validate(current_user)
