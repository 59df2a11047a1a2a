"""
Repository functions for users and login sessions.

A login creates a UserSession row. The refresh token is stored only as a
SHA-256 hash, and every token names its session, so revoking the session
logs the device out.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import settings
from ticketing.core.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from ticketing.core.security import (
    MIN_PASSWORD_LENGTH,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    hash_token,
    verify_password,
)
from ticketing.db.models import User, UserSession
from ticketing.db.validators import utcnow
from ticketing.domain.enums import UserRole, UserStatus

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MSG = "Invalid credentials"
INVALID_REFRESH_TOKEN_MSG = "Invalid refresh token"

# Revoked sessions are kept this long before cleanup deletes them
REVOKED_SESSION_RETENTION = timedelta(days=1)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"min_length": MIN_PASSWORD_LENGTH},
        )


async def get_user(db: AsyncSession, user_id: Any) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": str(user_id)})
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: str | None = None,
    role: UserRole = UserRole.ATTENDEE,
) -> User:
    _check_password_length(password)
    email = normalize_email(email)

    if await get_user_by_email(db, email) is not None:
        raise ConflictError("User with this email already exists", details={"email": email})

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        phone=phone,
        role=role,
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    await db.flush()

    logger.info("Registered user %s", user.id)
    return user


async def _issue_session(
    db: AsyncSession,
    user: User,
    *,
    user_agent: str | None,
    ip_addr: str | None,
) -> dict[str, Any]:
    """Create a session row and the token pair bound to it."""
    now = utcnow()
    session = UserSession(
        user_id=user.id,
        user_agent=user_agent,
        ip_addr=ip_addr,
        expires_at=now + timedelta(days=settings.refresh_token_expire_days),
    )
    db.add(session)
    await db.flush()

    access_token, expires_in = create_access_token(
        user_id=user.id, email=user.email, role=user.role.value, session_id=session.id, now=now
    )
    refresh_token = create_refresh_token(
        user_id=user.id, session_id=session.id, expires_at=session.expires_at
    )
    session.refresh_token_hash = hash_token(refresh_token)
    await db.flush()

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": expires_in,
        "user": user,
    }


async def register(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: str | None = None,
    user_agent: str | None = None,
    ip_addr: str | None = None,
) -> dict[str, Any]:
    user = await create_user(db, email=email, password=password, full_name=full_name, phone=phone)
    return await _issue_session(db, user, user_agent=user_agent, ip_addr=ip_addr)


async def login(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_addr: str | None = None,
) -> dict[str, Any]:
    """
    Verify credentials and open a new session.

    Raises:
        UnauthorizedError: Unknown email, wrong password or inactive account
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login attempt", extra={"ip_addr": ip_addr})
        raise UnauthorizedError(INVALID_CREDENTIALS_MSG)

    if user.status != UserStatus.ACTIVE:
        logger.warning("Login attempt for inactive user %s", user.id)
        raise UnauthorizedError("Account is not active")

    tokens = await _issue_session(db, user, user_agent=user_agent, ip_addr=ip_addr)
    logger.info("User %s logged in", user.id)
    return tokens


async def refresh(db: AsyncSession, *, refresh_token: str) -> dict[str, Any]:
    """
    Rotate a refresh token: revoke its session and open a new one.

    Raises:
        UnauthorizedError: If the token or its session is not valid
    """
    payload = decode_token(refresh_token, REFRESH_TOKEN_TYPE, INVALID_REFRESH_TOKEN_MSG)
    try:
        session_id = uuid.UUID(str(payload["sid"]))
    except ValueError:
        raise UnauthorizedError(INVALID_REFRESH_TOKEN_MSG)

    now = utcnow()
    session = await db.get(UserSession, session_id)
    if (
        session is None
        or session.revoked_at is not None
        or session.expires_at <= now
        or session.refresh_token_hash != hash_token(refresh_token)
    ):
        logger.warning("Rejected refresh for session %s", session_id)
        raise UnauthorizedError(INVALID_REFRESH_TOKEN_MSG)

    user = await db.get(User, session.user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise UnauthorizedError(INVALID_REFRESH_TOKEN_MSG)

    session.revoked_at = now
    tokens = await _issue_session(
        db, user, user_agent=session.user_agent, ip_addr=session.ip_addr
    )
    logger.info("Rotated session %s for user %s", session_id, user.id)
    return tokens


async def logout(db: AsyncSession, *, session_id: Any) -> None:
    session = await db.get(UserSession, uuid.UUID(str(session_id)))
    if session is not None and session.revoked_at is None:
        session.revoked_at = utcnow()
        await db.flush()
        logger.info("Revoked session %s", session.id)


async def logout_all(db: AsyncSession, *, user_id: Any) -> int:
    """Revoke every active session of the user; returns the number revoked."""
    result = await db.execute(
        update(UserSession)
        .where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
        .values(revoked_at=utcnow())
    )
    logger.info("Revoked %d sessions for user %s", result.rowcount, user_id)
    return result.rowcount


async def update_profile(
    db: AsyncSession,
    *,
    user_id: Any,
    full_name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
) -> User:
    user = await get_user(db, user_id)

    if email is not None:
        email = normalize_email(email)
        if email != user.email:
            if await get_user_by_email(db, email) is not None:
                raise ConflictError("User with this email already exists", details={"email": email})
            user.email = email

    if full_name is not None:
        user.full_name = full_name.strip()
    if phone is not None:
        user.phone = phone

    await db.flush()
    return user


async def change_password(
    db: AsyncSession, *, user_id: Any, current_password: str, new_password: str
) -> None:
    """Change the password and revoke every session of the user."""
    user = await get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect")

    _check_password_length(new_password)
    user.password_hash = hash_password(new_password)
    await logout_all(db, user_id=user.id)
    await db.flush()
    logger.info("Password changed for user %s", user.id)


async def cleanup_expired_sessions(db: AsyncSession, *, now: datetime | None = None) -> int:
    """Delete expired sessions and sessions revoked more than a day ago."""
    now = now or utcnow()
    result = await db.execute(
        delete(UserSession).where(
            or_(
                UserSession.expires_at < now,
                UserSession.revoked_at < now - REVOKED_SESSION_RETENTION,
            )
        )
        .execution_options(synchronize_session=False)
    )
    logger.info("Deleted %d stale sessions", result.rowcount)
    return result.rowcount
