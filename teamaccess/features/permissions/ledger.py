"""
PermissionLedger: grant storage and effective-permission resolution.

Effective permission for a member on a resource is the bitwise OR of every
grant on that resource whose principal is the member, one of its groups, or
one of its org nodes (ancestors included). The only implicit rule is the
team-owner rule: the owner of a team has full access to the ``team``
resource, evaluated once here.
"""
from dataclasses import dataclass
from functools import reduce
from operator import or_ as bit_or
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, delete, update, and_, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.base import generate_ulid
from teamaccess.core.errors import NotFoundError, ValidationError
from teamaccess.features.groups.models import MemberGroup
from teamaccess.features.orgs.models import OrgNode
from teamaccess.features.permissions.constants import ResourceType, OWNER_PERMISSION
from teamaccess.features.permissions.display import (
    PrincipalDisplayLookup,
    SqlPrincipalDisplayLookup,
    placeholder_display,
)
from teamaccess.features.permissions.models import Grant
from teamaccess.features.permissions.principals import Principal, PrincipalKind
from teamaccess.features.permissions.resolver import PrincipalResolver
from teamaccess.features.teams.models import TeamMember, TeamMemberRole, TeamMemberStatus
from teamaccess.utils import get_logger


log = get_logger(__name__)

# Listing order of principal kinds
KIND_ORDER = {PrincipalKind.MEMBER: 0, PrincipalKind.GROUP: 1, PrincipalKind.ORG: 2}


@dataclass
class GrantView:
    principal_kind: PrincipalKind
    principal_id: str
    display_name: str
    avatar: str
    permission: int


def validate_permission_value(permission) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(permission, bool) or not isinstance(permission, int) or permission < 0:
        raise ValidationError("Permission must be a non-negative integer")
    return permission


def validate_resource_type(resource_type) -> ResourceType:
    try:
        return ResourceType(resource_type)
    except ValueError:
        raise ValidationError(f"Unknown resource type: {resource_type!r}")


class PermissionLedger:
    def __init__(
        self,
        db: AsyncSession,
        resolver: Optional[PrincipalResolver] = None,
        display_lookup: Optional[PrincipalDisplayLookup] = None
    ):
        self.db = db
        self.resolver = resolver or PrincipalResolver(db)
        self.display_lookup = display_lookup or SqlPrincipalDisplayLookup(db)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, resource_type: ResourceType, resource_id: str, member_id: str) -> int:
        """
        Effective permission bitmask of ``member_id`` on a resource.

        Raises:
            NotFoundError: member missing or not active
            ValidationError: unknown resource type
        """
        resource_type = validate_resource_type(resource_type)
        principals = await self.resolver.expand(member_id)

        if resource_type == ResourceType.TEAM and resource_id == principals.team_id:
            if await self._is_team_owner(member_id):
                log.debug(f"Member {member_id} owns team {resource_id}: full access")
                return OWNER_PERMISSION

        matches = [and_(Grant.principal_kind == PrincipalKind.MEMBER, Grant.principal_id == member_id)]
        if principals.group_ids:
            matches.append(
                and_(Grant.principal_kind == PrincipalKind.GROUP, Grant.principal_id.in_(principals.group_ids))
            )
        if principals.org_ids:
            matches.append(
                and_(Grant.principal_kind == PrincipalKind.ORG, Grant.principal_id.in_(principals.org_ids))
            )

        result = await self.db.execute(
            select(Grant.permission).where(
                and_(
                    Grant.resource_type == resource_type,
                    Grant.resource_id == resource_id,
                    Grant.team_id == principals.team_id,
                    or_(*matches)
                )
            )
        )
        permission = reduce(bit_or, result.scalars().all(), 0)

        log.debug(f"Member {member_id} has permission {permission:#b} on {resource_type.value}:{resource_id}")
        return permission

    async def _is_team_owner(self, member_id: str) -> bool:
        result = await self.db.execute(select(TeamMember.role).where(TeamMember.id == member_id))
        return result.scalar_one_or_none() == TeamMemberRole.OWNER

    # ------------------------------------------------------------------
    # Principal validation
    # ------------------------------------------------------------------

    async def valid_principal_ids(self, team_id: str, kind: PrincipalKind, ids: Iterable[str]) -> Set[str]:
        """Subset of ``ids`` that are live principals of ``kind`` in the team."""
        ids = set(ids)
        if not ids:
            return set()

        if kind == PrincipalKind.MEMBER:
            stmt = select(TeamMember.id).where(
                and_(
                    TeamMember.id.in_(ids),
                    TeamMember.team_id == team_id,
                    TeamMember.status == TeamMemberStatus.ACTIVE
                )
            )
        elif kind == PrincipalKind.GROUP:
            stmt = select(MemberGroup.id).where(and_(MemberGroup.id.in_(ids), MemberGroup.team_id == team_id))
        else:
            stmt = select(OrgNode.id).where(and_(OrgNode.id.in_(ids), OrgNode.team_id == team_id))

        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def _validate_principal(self, team_id: str, principal: Principal) -> None:
        if principal.id not in await self.valid_principal_ids(team_id, principal.kind, [principal.id]):
            raise ValidationError(f"{principal.kind.value.capitalize()} {principal.id} is not part of this team")

    @staticmethod
    def _validate_resource(resource_type: ResourceType, resource_id: str, team_id: str) -> None:
        if not resource_id:
            raise ValidationError("Resource id is required")
        if resource_type == ResourceType.TEAM and resource_id != team_id:
            raise ValidationError("Team grants must target the team itself")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_grant(
        self,
        resource_type: ResourceType,
        resource_id: str,
        team_id: str,
        principal: Principal,
        permission: int,
        validate_principal: bool = True
    ) -> Grant:
        """
        Create or overwrite the grant for (resource, principal).

        Repeated calls overwrite the bitmask; the unique key on
        (resource_type, resource_id, principal) keeps a single row even when
        writers race, the last write wins.
        """
        resource_type = validate_resource_type(resource_type)
        permission = validate_permission_value(permission)
        self._validate_resource(resource_type, resource_id, team_id)
        if validate_principal:
            await self._validate_principal(team_id, principal)

        await self._write_grant(resource_type, resource_id, team_id, principal, permission)

        result = await self.db.execute(
            select(Grant)
            .where(self._grant_key(resource_type, resource_id, principal))
            .execution_options(populate_existing=True)
        )
        grant = result.scalar_one()
        log.info(f"Granted {permission} on {resource_type.value}:{resource_id} to {principal}")
        return grant

    async def _write_grant(
        self,
        resource_type: ResourceType,
        resource_id: str,
        team_id: str,
        principal: Principal,
        permission: int
    ) -> None:
        dialect = self.db.get_bind().dialect.name
        values = dict(
            id=generate_ulid(),
            resource_type=resource_type,
            resource_id=resource_id,
            team_id=team_id,
            principal_kind=principal.kind,
            principal_id=principal.id,
            permission=permission,
        )

        if dialect in ("sqlite", "postgresql"):
            if dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert as dialect_insert
            else:
                from sqlalchemy.dialects.postgresql import insert as dialect_insert

            stmt = dialect_insert(Grant.__table__).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["resource_type", "resource_id", "principal_kind", "principal_id"],
                set_={"permission": stmt.excluded.permission, "updated_at": func.now()},
            )
            await self.db.execute(stmt)
            return

        # Other backends: read-then-write inside the request transaction
        updated = await self.db.execute(
            update(Grant)
            .where(self._grant_key(resource_type, resource_id, principal))
            .values(permission=permission)
        )
        if not updated.rowcount:
            self.db.add(Grant(**values))
            await self.db.flush()

    @staticmethod
    def _grant_key(resource_type: ResourceType, resource_id: str, principal: Principal):
        return and_(
            Grant.resource_type == resource_type,
            Grant.resource_id == resource_id,
            Grant.principal_kind == principal.kind,
            Grant.principal_id == principal.id,
        )

    async def revoke_grant(
        self,
        resource_type: ResourceType,
        resource_id: str,
        principal: Principal,
        team_id: Optional[str] = None
    ) -> None:
        """
        Delete the grant for (resource, principal).

        Raises:
            NotFoundError: no such grant; revoking nothing is never reported as success
        """
        resource_type = validate_resource_type(resource_type)
        stmt = delete(Grant).where(self._grant_key(resource_type, resource_id, principal))
        if team_id is not None:
            stmt = stmt.where(Grant.team_id == team_id)

        result = await self.db.execute(stmt)
        if not result.rowcount:
            raise NotFoundError("Collaborator permission record not found")

        log.info(f"Revoked grant on {resource_type.value}:{resource_id} from {principal}")

    async def delete_grants_for_principal(self, principal: Principal, team_id: Optional[str] = None) -> int:
        """Remove every grant held by a principal. Safe to repeat."""
        stmt = delete(Grant).where(
            and_(Grant.principal_kind == principal.kind, Grant.principal_id == principal.id)
        )
        if team_id is not None:
            stmt = stmt.where(Grant.team_id == team_id)
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_grants(
        self,
        resource_type: ResourceType,
        resource_id: str,
        team_id: Optional[str] = None
    ) -> List[GrantView]:
        """
        Every grant on a resource with display names, members first, then groups, then orgs.

        Display lookups that fail fall back to a placeholder name and avatar.
        """
        resource_type = validate_resource_type(resource_type)
        stmt = select(Grant).where(
            and_(Grant.resource_type == resource_type, Grant.resource_id == resource_id)
        )
        if team_id is not None:
            stmt = stmt.where(Grant.team_id == team_id)

        result = await self.db.execute(
            stmt.order_by(Grant.created_at, Grant.id).execution_options(populate_existing=True)
        )
        grants = sorted(result.scalars().all(), key=lambda grant: KIND_ORDER[grant.principal_kind])

        views = []
        for grant in grants:
            principal = grant.principal
            try:
                display = await self.display_lookup.describe(principal)
            except Exception as e:
                log.warning(f"Display lookup failed for {principal}: {e}")
                display = placeholder_display(principal)

            views.append(GrantView(
                principal_kind=principal.kind,
                principal_id=principal.id,
                display_name=display.name,
                avatar=display.avatar,
                permission=grant.permission,
            ))
        return views
