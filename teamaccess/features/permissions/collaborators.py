"""
CollaboratorService: batch grant writes used by the sharing dialogs.

Updates merge into the existing grant set. Principals that are not part of
the payload keep whatever grant they already hold; invalid entries are
dropped and counted rather than failing the whole batch.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.errors import ValidationError
from teamaccess.features.permissions.constants import ResourceType, DEFAULT_COLLABORATOR_PERMISSION
from teamaccess.features.permissions.ledger import PermissionLedger, validate_permission_value, validate_resource_type
from teamaccess.features.permissions.principals import Principal, PrincipalKind
from teamaccess.utils import get_logger


log = get_logger(__name__)


@dataclass
class CollaboratorEntry:
    id: str
    permission: Optional[int] = None


@dataclass
class CollaboratorUpdateResult:
    applied: Dict[PrincipalKind, int] = field(default_factory=lambda: {kind: 0 for kind in PrincipalKind})
    ignored: Dict[PrincipalKind, int] = field(default_factory=lambda: {kind: 0 for kind in PrincipalKind})


class CollaboratorService:
    def __init__(self, db: AsyncSession, ledger: Optional[PermissionLedger] = None):
        self.db = db
        self.ledger = ledger or PermissionLedger(db)

    async def update_collaborators(
        self,
        resource_type: ResourceType,
        resource_id: str,
        team_id: str,
        members: Optional[List[CollaboratorEntry]] = None,
        groups: Optional[List[CollaboratorEntry]] = None,
        orgs: Optional[List[CollaboratorEntry]] = None,
        default_permission: int = DEFAULT_COLLABORATOR_PERMISSION
    ) -> CollaboratorUpdateResult:
        """
        Upsert a grant for every valid principal in the request.

        Lists that are None are skipped entirely; an empty list is a no-op for
        that kind. Entries without their own permission get ``default_permission``.

        Raises:
            ValidationError: no list given, an unknown resource type or a negative permission value
        """
        if members is None and groups is None and orgs is None:
            raise ValidationError("At least one of members, groups or orgs is required")
        resource_type = validate_resource_type(resource_type)
        validate_permission_value(default_permission)

        requested = {
            PrincipalKind.MEMBER: members,
            PrincipalKind.GROUP: groups,
            PrincipalKind.ORG: orgs,
        }
        result = CollaboratorUpdateResult()

        for kind, entries in requested.items():
            if entries is None:
                continue
            for entry in entries:
                if entry.permission is not None:
                    validate_permission_value(entry.permission)

            # Last entry wins when the same principal is listed twice
            by_id = {entry.id: entry for entry in entries if entry.id}
            valid_ids = await self.ledger.valid_principal_ids(team_id, kind, by_id.keys())

            ignored = [entry.id for entry in entries if entry.id not in valid_ids]
            if ignored:
                log.warning(
                    f"Ignoring {len(ignored)} {kind.value} collaborator(s) not in team {team_id}: "
                    f"{', '.join(str(i) for i in ignored)}"
                )

            for principal_id, entry in by_id.items():
                if principal_id not in valid_ids:
                    continue
                permission = entry.permission if entry.permission is not None else default_permission
                await self.ledger.upsert_grant(
                    resource_type,
                    resource_id,
                    team_id,
                    Principal(kind, principal_id),
                    permission,
                    validate_principal=False,
                )

            result.applied[kind] = len(valid_ids)
            result.ignored[kind] = len(ignored)

        applied = {kind.value: count for kind, count in result.applied.items()}
        ignored = {kind.value: count for kind, count in result.ignored.items()}
        log.info(
            f"Updated collaborators on {resource_type.value}:{resource_id}: "
            f"applied={applied} ignored={ignored}"
        )
        return result

    async def delete_collaborator(
        self,
        resource_type: ResourceType,
        resource_id: str,
        team_id: str,
        principal: Principal
    ) -> None:
        """Revoke one principal's grant. Raises NotFoundError when there is none."""
        await self.ledger.revoke_grant(resource_type, resource_id, principal, team_id=team_id)
