"""
Org hierarchy routes, scoped to the caller's team.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.engine import get_db
from teamaccess.features.orgs.schemas import (
    OrgNodeCreate,
    OrgNodeResponse,
    OrgNodeListItem,
    OrgMembersUpdate,
    OrgMembersUpdateResponse,
    OrgMembersResponse,
)
from teamaccess.features.orgs.service import OrgTree
from teamaccess.features.permissions.dependencies import require_team_manager
from teamaccess.features.users.auth import AuthContext
from teamaccess.features.users.dependencies import get_auth_context
from teamaccess.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _with_counts(tree: OrgTree, nodes) -> List[OrgNodeListItem]:
    summaries = await tree.summarize([node.id for node in nodes])
    items = []
    for node in nodes:
        summary = summaries[node.id]
        item = OrgNodeListItem.model_validate(node)
        item.member_count = summary.member_count
        item.descendant_count = summary.descendant_count
        item.total = summary.total
        items.append(item)
    return items


@router.post("", response_model=OrgNodeResponse, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgNodeCreate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    tree = OrgTree(db)
    return await tree.create_node(auth.team_id, body.parent_id, body.name, body.avatar, body.description)


@router.get("", response_model=List[OrgNodeListItem])
async def list_orgs(
    parent_id: Optional[str] = None,
    search_key: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Direct children of ``parent_id`` (top-level nodes when omitted) with counts."""
    tree = OrgTree(db)
    nodes = await tree.list_children(auth.team_id, parent_id, search_key)
    return await _with_counts(tree, nodes)


@router.get("/{org_id}/descendants", response_model=List[OrgNodeResponse])
async def list_descendants(
    org_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return await OrgTree(db).list_descendants(auth.team_id, org_id)


@router.get("/{org_id}/ancestors", response_model=List[OrgNodeResponse])
async def list_ancestors(
    org_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """The node followed by each ancestor up to its top-level node."""
    return await OrgTree(db).ancestor_chain(auth.team_id, org_id)


@router.get("/{org_id}/members", response_model=OrgMembersResponse)
async def list_org_members(
    org_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    tree = OrgTree(db)
    await tree.get_node(auth.team_id, org_id)
    return OrgMembersResponse(org_id=org_id, member_ids=await tree.list_member_ids(org_id))


@router.put("/{org_id}/members", response_model=OrgMembersUpdateResponse)
async def update_org_members(
    org_id: str,
    body: OrgMembersUpdate,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    """Replace the node's member set; members not active in the team are ignored."""
    applied, ignored = await OrgTree(db).update_members(auth.team_id, org_id, body.member_ids)
    return OrgMembersUpdateResponse(applied=applied, ignored=ignored)


@router.delete("/{org_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_org_member(
    org_id: str,
    member_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    await OrgTree(db).remove_member(auth.team_id, org_id, member_id)
    return None


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_org(
    org_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_team_manager)
):
    """Delete a node without children, along with its memberships and grants."""
    await OrgTree(db).delete_node(auth.team_id, org_id)
    return None
