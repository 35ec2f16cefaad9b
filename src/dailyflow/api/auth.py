"""Auth API: register, login, logout."""

from fastapi import APIRouter, Response
from fastapi.concurrency import run_in_threadpool

from dailyflow.core.deps import AuthServiceDep, CurrentUserIdDep, ReminderRegistryDep
from dailyflow.models.auth import TokenResponse, UserLogin, UserRegister

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: UserRegister,
    auth_service: AuthServiceDep,
    registry: ReminderRegistryDep,
) -> TokenResponse:
    """Create an account and return a bearer token."""
    token = await run_in_threadpool(auth_service.register, body)
    registry.open(token.user.id)
    return token


@router.post("/login", response_model=TokenResponse)
async def login(
    body: UserLogin,
    auth_service: AuthServiceDep,
    registry: ReminderRegistryDep,
) -> TokenResponse:
    """Exchange email and password for a bearer token; opens the reminder session."""
    token = await run_in_threadpool(auth_service.login, body)
    registry.open(token.user.id)
    return token


@router.post("/logout", status_code=204, response_class=Response)
async def logout(user_id: CurrentUserIdDep, registry: ReminderRegistryDep) -> None:
    """Cancel every pending reminder of the caller."""
    await registry.close(user_id)
