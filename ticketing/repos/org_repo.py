"""
Repository functions for organizations and their members.

Every org-scoped permission check is a single membership row lookup
followed by an "is the role allowed" test.
"""

import logging
from collections.abc import Collection
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.audit import create_audit_log_async, snapshot_entity
from ticketing.core.config import settings
from ticketing.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from ticketing.db.models import Event, OrgMember, Organization
from ticketing.domain.enums import AuditEntityType, OrgMemberRole
from ticketing.repos.auth_repo import get_user_by_email
from ticketing.services.currency import validate_currency_code
from ticketing.services.drafts import slugify

logger = logging.getLogger(__name__)

MANAGE_ROLES = (OrgMemberRole.OWNER, OrgMemberRole.MANAGER)
FINANCE_ROLES = (OrgMemberRole.OWNER, OrgMemberRole.FINANCE)
CHECKIN_ROLES = (OrgMemberRole.OWNER, OrgMemberRole.MANAGER, OrgMemberRole.STAFF)
ALL_ROLES = tuple(OrgMemberRole)

MANAGE_EVENT_FORBIDDEN_MSG = "You do not have permission to manage this event"


async def get_membership(db: AsyncSession, org_id: Any, user_id: Any) -> OrgMember | None:
    result = await db.execute(
        select(OrgMember).where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def assert_org_role(
    db: AsyncSession,
    org_id: Any,
    user_id: Any,
    allowed_roles: Collection[OrgMemberRole] = MANAGE_ROLES,
    message: str = "You do not have permission to perform this action",
) -> OrgMember:
    """
    Raises:
        ForbiddenError: No membership row, or a role outside `allowed_roles`
    """
    membership = await get_membership(db, org_id, user_id)
    if membership is None or membership.role not in allowed_roles:
        logger.warning(
            "Access denied - user %s role %s not in %s for org %s",
            user_id,
            membership.role.value if membership else None,
            [r.value for r in allowed_roles],
            org_id,
        )
        raise ForbiddenError(
            message,
            details={
                "org_id": str(org_id),
                "allowed_roles": [r.value for r in allowed_roles],
            },
        )
    return membership


async def is_org_member(db: AsyncSession, org_id: Any, user_id: Any) -> bool:
    return await get_membership(db, org_id, user_id) is not None


async def get_managed_event(
    db: AsyncSession,
    event_id: Any,
    user_id: Any,
    allowed_roles: Collection[OrgMemberRole] = MANAGE_ROLES,
) -> Event:
    """Load an event the user may manage through their org membership."""
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found", details={"event_id": str(event_id)})
    await assert_org_role(db, event.org_id, user_id, allowed_roles, MANAGE_EVENT_FORBIDDEN_MSG)
    return event


async def _unique_org_slug(db: AsyncSession, name: str) -> str:
    base = slugify(name, fallback="org")
    candidate = base
    suffix = 2
    while await db.scalar(select(Organization.id).where(Organization.slug == candidate)):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


async def create_org(
    db: AsyncSession,
    *,
    name: str,
    created_by: Any,
    country: str | None = None,
    currency: str | None = None,
) -> Organization:
    org = Organization(
        name=name.strip(),
        slug=await _unique_org_slug(db, name),
        country=country.upper() if country else None,
        currency=validate_currency_code(currency or settings.default_currency),
        created_by=created_by,
    )
    db.add(org)
    await db.flush()
    db.add(OrgMember(org_id=org.id, user_id=created_by, role=OrgMemberRole.OWNER))
    await db.flush()

    logger.info("Created organization %s (%s)", org.id, org.slug)
    return org


async def list_my_orgs(db: AsyncSession, user_id: Any) -> list[Organization]:
    result = await db.execute(
        select(Organization)
        .join(OrgMember, OrgMember.org_id == Organization.id)
        .where(OrgMember.user_id == user_id)
        .order_by(Organization.created_at.desc())
    )
    return list(result.scalars().all())


async def get_org(db: AsyncSession, org_id: Any, user_id: Any) -> Organization:
    """Organization details, visible to members only."""
    org = await db.get(Organization, org_id)
    if org is None or not await is_org_member(db, org_id, user_id):
        raise NotFoundError("Organization not found", details={"org_id": str(org_id)})
    return org


async def add_member(
    db: AsyncSession,
    *,
    org_id: Any,
    actor_id: Any,
    email: str,
    role: OrgMemberRole,
) -> OrgMember:
    actor = await assert_org_role(db, org_id, actor_id, MANAGE_ROLES)
    if role == OrgMemberRole.OWNER and actor.role != OrgMemberRole.OWNER:
        raise ForbiddenError("Only an owner can grant the owner role")

    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFoundError("User not found", details={"email": email})

    if await get_membership(db, org_id, user.id) is not None:
        raise ConflictError(
            "User is already a member of this organization",
            details={"org_id": str(org_id), "user_id": str(user.id)},
        )

    member = OrgMember(org_id=org_id, user_id=user.id, role=role)
    db.add(member)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.ORG_MEMBER,
        entity_id=member.id,
        action="ADD",
        new_value=snapshot_entity(member),
        performed_by=actor_id,
    )
    logger.info("Added user %s to org %s as %s", user.id, org_id, role.value)
    return member


async def _get_member(db: AsyncSession, org_id: Any, user_id: Any) -> OrgMember:
    member = await get_membership(db, org_id, user_id)
    if member is None:
        raise NotFoundError(
            "Member not found", details={"org_id": str(org_id), "user_id": str(user_id)}
        )
    return member


async def _count_owners(db: AsyncSession, org_id: Any) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(OrgMember)
        .where(OrgMember.org_id == org_id, OrgMember.role == OrgMemberRole.OWNER)
    )


async def update_member_role(
    db: AsyncSession,
    *,
    org_id: Any,
    actor_id: Any,
    user_id: Any,
    role: OrgMemberRole,
) -> OrgMember:
    await assert_org_role(db, org_id, actor_id, (OrgMemberRole.OWNER,))
    member = await _get_member(db, org_id, user_id)

    if (
        member.role == OrgMemberRole.OWNER
        and role != OrgMemberRole.OWNER
        and await _count_owners(db, org_id) <= 1
    ):
        raise InvalidStateError("Organization must keep at least one owner")

    old_value = snapshot_entity(member)
    member.role = role
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.ORG_MEMBER,
        entity_id=member.id,
        action="ROLE_CHANGE",
        old_value=old_value,
        new_value=snapshot_entity(member),
        performed_by=actor_id,
    )
    logger.info("Changed role of user %s in org %s to %s", user_id, org_id, role.value)
    return member


async def remove_member(db: AsyncSession, *, org_id: Any, actor_id: Any, user_id: Any) -> None:
    actor = await assert_org_role(db, org_id, actor_id, MANAGE_ROLES)
    member = await _get_member(db, org_id, user_id)

    if member.role == OrgMemberRole.OWNER:
        if actor.role != OrgMemberRole.OWNER:
            raise ForbiddenError("Only an owner can remove an owner")
        if await _count_owners(db, org_id) <= 1:
            raise InvalidStateError("Cannot remove the last owner of an organization")

    old_value = snapshot_entity(member)
    await db.delete(member)
    await db.flush()

    await create_audit_log_async(
        db,
        entity_type=AuditEntityType.ORG_MEMBER,
        entity_id=member.id,
        action="REMOVE",
        old_value=old_value,
        performed_by=actor_id,
    )
    logger.info("Removed user %s from org %s", user_id, org_id)
