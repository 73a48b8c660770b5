"""
Team and member routes. Everything under ``/teams/current`` acts on the caller's team.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.engine import get_db
from teamaccess.core.errors import PermissionDeniedError
from teamaccess.features.permissions.dependencies import has_manage_permission, require_team_manager
from teamaccess.features.teams.lifecycle import MembershipLifecycle
from teamaccess.features.teams.models import TeamMemberStatus
from teamaccess.features.teams.schemas import (
    TeamCreate,
    TeamResponse,
    ChangeOwnerRequest,
    MemberCreate,
    MemberRename,
    MemberResponse,
    ExitResponse,
)
from teamaccess.features.teams.service import TeamAggregateRoot
from teamaccess.features.users.auth import AuthContext
from teamaccess.features.users.dependencies import get_auth_context
from teamaccess.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Team Routes
# ============================================================================

@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    body: TeamCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Create a new team owned by the calling user."""
    teams = TeamAggregateRoot(db)
    caller = await teams.get_member(auth.team_id, auth.member_id)
    return await teams.create_team(caller.user_id, body.name, body.avatar)


@router.get("/current", response_model=TeamResponse)
async def get_current_team(
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return await TeamAggregateRoot(db).get_team(auth.team_id)


@router.post("/current/owner", response_model=MemberResponse)
async def change_owner(
    body: ChangeOwnerRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Hand the team to another active member (current owner or root only)."""
    teams = TeamAggregateRoot(db)
    if not auth.is_root:
        owner = await teams.get_owner(auth.team_id)
        if owner.id != auth.member_id:
            raise PermissionDeniedError("Only the team owner can transfer ownership")
    return await teams.change_owner(auth.team_id, body.member_id)


# ============================================================================
# Member Routes
# ============================================================================

@router.get("/current/members", response_model=List[MemberResponse])
async def list_members(
    status: Optional[TeamMemberStatus] = None,
    search_key: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return await TeamAggregateRoot(db).list_members(auth.team_id, status=status, search_key=search_key)


@router.post("/current/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    body: MemberCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    return await TeamAggregateRoot(db).add_member(auth.team_id, body.username, role=body.role, name=body.name)


@router.patch("/current/members/{member_id}", response_model=MemberResponse)
async def rename_member(
    member_id: str,
    body: MemberRename,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Members rename themselves; managers rename anyone."""
    if member_id != auth.member_id and not await has_manage_permission(db, auth):
        raise PermissionDeniedError("Team manage permission required")
    return await TeamAggregateRoot(db).rename_member(auth.team_id, member_id, body.name)


@router.post("/current/leave", response_model=ExitResponse)
async def leave_team(
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Leave the team; everything the caller created moves to the owner."""
    result = await MembershipLifecycle(db).leave(auth.team_id, auth.member_id)
    return ExitResponse(**vars(result))


@router.post("/current/members/{member_id}/remove", response_model=ExitResponse)
async def remove_member(
    member_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    result = await MembershipLifecycle(db).remove(auth.team_id, member_id, actor_member_id=auth.member_id)
    return ExitResponse(**vars(result))


@router.post("/current/members/{member_id}/restore", response_model=MemberResponse)
async def restore_member(
    member_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    return await MembershipLifecycle(db).restore(auth.team_id, member_id)


@router.delete("/current/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_member(
    member_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    """Permanently delete a removed member and its account."""
    await MembershipLifecycle(db).hard_delete(auth.team_id, member_id, actor_member_id=auth.member_id)
    return None
