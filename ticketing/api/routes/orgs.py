"""Organization and membership routes."""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, status

from ticketing.api.schemas.org import (
    MemberCreate,
    MemberResponse,
    MemberRoleUpdate,
    OrgCreate,
    OrgResponse,
)
from ticketing.core.dependencies import AsyncDbSession, CurrentUser
from ticketing.core.security import get_user_id, require_permission
from ticketing.db.models import OrgMember, Organization
from ticketing.repos import org_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orgs", tags=["Organizations"])

OrgId = Annotated[uuid.UUID, Path(description="Organization id")]


@router.post(
    "",
    response_model=OrgResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an organization",
    description="The caller becomes the organization's owner.",
)
async def create_org(
    payload: OrgCreate,
    db: AsyncDbSession,
    user: Annotated[dict[str, Any], Depends(require_permission("org:create"))],
) -> Organization:
    org = await org_repo.create_org(
        db,
        name=payload.name,
        created_by=get_user_id(user),
        country=payload.country,
        currency=payload.currency,
    )
    await db.commit()
    return org


@router.get("", response_model=list[OrgResponse], summary="Organizations I belong to")
async def list_my_orgs(db: AsyncDbSession, user: CurrentUser) -> list[Organization]:
    return await org_repo.list_my_orgs(db, get_user_id(user))


@router.get("/{org_id}", response_model=OrgResponse, summary="Get an organization")
async def get_org(org_id: OrgId, db: AsyncDbSession, user: CurrentUser) -> Organization:
    return await org_repo.get_org(db, org_id, get_user_id(user))


@router.post(
    "/{org_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a member",
    description="""
    Add an existing user to the organization by email.

    **Authorization:** owner or manager; only an owner may grant `owner`.

    **Errors:**
    - 404 Not Found: No user with that email
    - 409 Conflict: The user is already a member
    """,
)
async def add_member(
    org_id: OrgId, payload: MemberCreate, db: AsyncDbSession, user: CurrentUser
) -> OrgMember:
    member = await org_repo.add_member(
        db, org_id=org_id, actor_id=get_user_id(user), email=payload.email, role=payload.role
    )
    await db.commit()
    return member


@router.patch(
    "/{org_id}/members/{user_id}",
    response_model=MemberResponse,
    summary="Change a member's role (owner only)",
)
async def update_member_role(
    org_id: OrgId,
    user_id: Annotated[uuid.UUID, Path(description="Member's user id")],
    payload: MemberRoleUpdate,
    db: AsyncDbSession,
    user: CurrentUser,
) -> OrgMember:
    member = await org_repo.update_member_role(
        db, org_id=org_id, actor_id=get_user_id(user), user_id=user_id, role=payload.role
    )
    await db.commit()
    return member


@router.delete(
    "/{org_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
)
async def remove_member(
    org_id: OrgId,
    user_id: Annotated[uuid.UUID, Path(description="Member's user id")],
    db: AsyncDbSession,
    user: CurrentUser,
) -> None:
    await org_repo.remove_member(db, org_id=org_id, actor_id=get_user_id(user), user_id=user_id)
    await db.commit()
