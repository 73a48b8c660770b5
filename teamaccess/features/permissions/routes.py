"""
Collaborator management API routes.

All paths are scoped to one resource: ``/permissions/{resource_type}/{resource_id}``.
For ``team`` the resource id is the caller's team id.
"""
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.engine import get_db
from teamaccess.features.permissions.collaborators import CollaboratorService, CollaboratorEntry
from teamaccess.features.permissions.constants import (
    ResourceType,
    READ_PERMISSION,
    WRITE_PERMISSION,
    MANAGE_PERMISSION,
    has_permission_bits,
)
from teamaccess.features.permissions.dependencies import require_resource_manager
from teamaccess.features.permissions.ledger import PermissionLedger
from teamaccess.features.permissions.principals import Principal
from teamaccess.features.permissions.schemas import (
    CollaboratorUpdateRequest,
    CollaboratorUpdateResponse,
    CollaboratorDeleteRequest,
    CollaboratorResponse,
    EffectivePermissionResponse,
    counts_by_kind,
)
from teamaccess.features.users.auth import AuthContext
from teamaccess.features.users.dependencies import get_auth_context
from teamaccess.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _entries(items):
    if items is None:
        return None
    return [CollaboratorEntry(id=item.id, permission=item.permission) for item in items]


@router.get(
    "/{resource_type}/{resource_id}/collaborators",
    response_model=List[CollaboratorResponse],
    response_model_by_alias=True
)
async def list_collaborators(
    resource_type: ResourceType,
    resource_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """List every grant on a resource: members, then groups, then orgs."""
    ledger = PermissionLedger(db)
    return await ledger.list_grants(resource_type, resource_id, team_id=auth.team_id)


@router.post(
    "/{resource_type}/{resource_id}/collaborators",
    response_model=CollaboratorUpdateResponse,
    response_model_by_alias=True
)
async def update_collaborators(
    resource_type: ResourceType,
    resource_id: str,
    body: CollaboratorUpdateRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_resource_manager)
):
    """Upsert grants for the principals in the body. Principals not listed keep their grants."""
    service = CollaboratorService(db)
    result = await service.update_collaborators(
        resource_type,
        resource_id,
        auth.team_id,
        members=_entries(body.members),
        groups=_entries(body.groups),
        orgs=_entries(body.orgs),
        default_permission=body.default_permission,
    )
    return CollaboratorUpdateResponse(
        applied_counts=counts_by_kind(result.applied),
        ignored_counts=counts_by_kind(result.ignored),
    )


@router.delete("/{resource_type}/{resource_id}/collaborators", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collaborator(
    resource_type: ResourceType,
    resource_id: str,
    body: CollaboratorDeleteRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_resource_manager)
):
    """Revoke one principal's grant; 404 when it has none."""
    service = CollaboratorService(db)
    await service.delete_collaborator(
        resource_type,
        resource_id,
        auth.team_id,
        Principal(body.principal_kind, body.principal_id),
    )
    return None


@router.get(
    "/{resource_type}/{resource_id}/me",
    response_model=EffectivePermissionResponse,
    response_model_by_alias=True
)
async def get_my_permission(
    resource_type: ResourceType,
    resource_id: str,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Effective permission of the caller on a resource."""
    ledger = PermissionLedger(db)
    permission = await ledger.resolve(resource_type, resource_id, auth.member_id)
    return EffectivePermissionResponse(
        resource_type=resource_type.value,
        resource_id=resource_id,
        member_id=auth.member_id,
        permission=permission,
        has_read=has_permission_bits(permission, READ_PERMISSION),
        has_write=has_permission_bits(permission, WRITE_PERMISSION),
        has_manage=has_permission_bits(permission, MANAGE_PERMISSION),
    )
