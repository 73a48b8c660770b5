"""
Route guards built on the permission ledger.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.engine import get_db
from teamaccess.core.errors import NotFoundError, PermissionDeniedError
from teamaccess.features.permissions.constants import ResourceType, MANAGE_PERMISSION, has_permission_bits
from teamaccess.features.permissions.ledger import PermissionLedger
from teamaccess.features.users.auth import AuthContext
from teamaccess.features.users.dependencies import get_auth_context
from teamaccess.utils import get_logger


log = get_logger(__name__)


async def has_manage_permission(
    db: AsyncSession,
    auth: AuthContext,
    resource_type: ResourceType = ResourceType.TEAM,
    resource_id: str | None = None
) -> bool:
    """
    True when the caller may manage the resource.

    Root callers always pass. Managing the team implies managing every
    resource in it.
    """
    if auth.is_root:
        return True

    ledger = PermissionLedger(db)
    try:
        team_permission = await ledger.resolve(ResourceType.TEAM, auth.team_id, auth.member_id)
    except NotFoundError:
        # Removed or unknown members manage nothing
        return False
    if has_permission_bits(team_permission, MANAGE_PERMISSION):
        return True

    if resource_type != ResourceType.TEAM and resource_id:
        permission = await ledger.resolve(resource_type, resource_id, auth.member_id)
        return has_permission_bits(permission, MANAGE_PERMISSION)
    return False


async def require_team_manager(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
) -> AuthContext:
    """
    Require manage permission on the caller's team.

    Usage:
        @router.post("/groups")
        async def create_group(auth: AuthContext = Depends(require_team_manager)):
            ...
    """
    if not await has_manage_permission(db, auth):
        log.info(f"Member {auth.member_id} denied team management in {auth.team_id}")
        raise PermissionDeniedError("Team manage permission required")
    return auth


async def require_resource_manager(
    resource_type: ResourceType,
    resource_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db)
) -> AuthContext:
    """Require manage permission on the resource named in the path."""
    if not await has_manage_permission(db, auth, resource_type, resource_id):
        log.info(f"Member {auth.member_id} denied managing {resource_type.value}:{resource_id}")
        raise PermissionDeniedError("Manage permission required on this resource")
    return auth
