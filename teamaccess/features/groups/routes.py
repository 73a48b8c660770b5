"""
Member group routes, scoped to the caller's team.
"""
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.engine import get_db
from teamaccess.features.groups.schemas import (
    GroupCreate,
    GroupUpdate,
    GroupResponse,
    GroupListItem,
    GroupDetail,
    GroupMemberOut,
)
from teamaccess.features.groups.service import GroupService, GroupMemberEntry
from teamaccess.features.permissions.dependencies import require_team_manager
from teamaccess.features.users.auth import AuthContext
from teamaccess.features.users.dependencies import get_auth_context
from teamaccess.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _detail(service: GroupService, group) -> GroupDetail:
    detail = GroupDetail.model_validate(group)
    detail.members = [GroupMemberOut.model_validate(entry) for entry in await service.list_members(group.id)]
    return detail


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    body: GroupCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    return await GroupService(db).create_group(auth.team_id, body.name, body.avatar)


@router.get("", response_model=List[GroupListItem])
async def list_groups(
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Every group in the team with its member count and owner."""
    summaries = await GroupService(db).list_groups(auth.team_id)
    items = []
    for summary in summaries:
        item = GroupListItem.model_validate(summary.group)
        item.member_count = summary.member_count
        item.owner_member_id = summary.owner_member_id
        items.append(item)
    return items


@router.get("/{group_id}", response_model=GroupDetail)
async def get_group(
    group_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    service = GroupService(db)
    return await _detail(service, await service.get_group(auth.team_id, group_id))


@router.patch("/{group_id}", response_model=GroupDetail)
async def update_group(
    group_id: str,
    body: GroupUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    service = GroupService(db)
    members = None
    if body.members is not None:
        members = [GroupMemberEntry(member_id=entry.member_id, role=entry.role) for entry in body.members]
    group = await service.update_group(auth.team_id, group_id, name=body.name, avatar=body.avatar, members=members)
    return await _detail(service, group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    """Delete a group, its memberships and every grant it holds."""
    await GroupService(db).delete_group(auth.team_id, group_id)
    return None
