"""
Authentication routes: registration, login, token refresh and sessions.

Access tokens are short-lived HS256 JWTs bound to a server-side session;
logging out revokes the session, which invalidates both tokens at once.
"""

import logging

from fastapi import APIRouter, Request, status

from ticketing.api.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id
from ticketing.db.models import User
from ticketing.repos import auth_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _client_info(request: Request) -> dict[str, str | None]:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_addr": request.client.host if request.client else None,
    }


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
    description="""
    Create an attendee account and sign in.

    **Errors:**
    - 400 Bad Request: Password shorter than 8 characters
    - 409 Conflict: Email already registered
    """,
)
async def register(payload: RegisterRequest, request: Request, db: AsyncDbSession) -> dict:
    result = await auth_repo.register(
        db,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        phone=payload.phone,
        **_client_info(request),
    )
    await db.commit()
    return result


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Sign in with email and password",
)
async def login(payload: LoginRequest, request: Request, db: AsyncDbSession) -> dict:
    result = await auth_repo.login(
        db, email=payload.email, password=payload.password, **_client_info(request)
    )
    await db.commit()
    return result


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate a refresh token",
    description="""
    Exchange a refresh token for a new token pair. The presented token's
    session is revoked, so each refresh token works once.
    """,
)
async def refresh(payload: RefreshRequest, db: AsyncDbSession) -> dict:
    result = await auth_repo.refresh(db, refresh_token=payload.refresh_token)
    await db.commit()
    return result


@router.post("/logout", response_model=MessageResponse, summary="Revoke the current session")
async def logout(db: AsyncDbSession, user: CurrentUser) -> dict:
    await auth_repo.logout(db, session_id=user["sid"])
    await db.commit()
    return {"message": "Logged out"}


@router.post("/logout-all", response_model=LogoutAllResponse, summary="Revoke every session")
async def logout_all(db: AsyncDbSession, user: CurrentUser) -> dict:
    revoked = await auth_repo.logout_all(db, user_id=get_user_id(user))
    await db.commit()
    return {"revoked": revoked}


@router.get("/me", response_model=UserResponse, summary="Current user profile")
async def me(db: AsyncDbSession, user: CurrentUser) -> User:
    return await auth_repo.get_user(db, get_user_id(user))


@router.patch("/me", response_model=UserResponse, summary="Update the current user's profile")
async def update_me(payload: ProfileUpdate, db: AsyncDbSession, user: CurrentUser) -> User:
    updated = await auth_repo.update_profile(
        db, user_id=get_user_id(user), **payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return updated


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
    description="""
    Change the password of the current user. Every session is revoked,
    including the one making this request.
    """,
)
async def change_password(
    payload: ChangePasswordRequest, db: AsyncDbSession, user: CurrentUser
) -> dict:
    await auth_repo.change_password(
        db,
        user_id=get_user_id(user),
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    await db.commit()
    return {"message": "Password changed"}
