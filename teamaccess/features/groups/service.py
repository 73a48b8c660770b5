"""
Member group management.

Keeps the single-owner rule: a group with members has exactly one member
holding the group owner role.
"""
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, delete, insert, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.errors import ConflictError, NotFoundError, ValidationError
from teamaccess.features.groups.models import MemberGroup, GroupMemberRole, group_memberships
from teamaccess.features.permissions.models import Grant
from teamaccess.features.permissions.principals import PrincipalKind
from teamaccess.features.teams.models import TeamMember, TeamMemberStatus
from teamaccess.utils import get_logger


log = get_logger(__name__)


@dataclass
class GroupMemberEntry:
    member_id: str
    role: GroupMemberRole


@dataclass
class GroupSummary:
    group: MemberGroup
    member_count: int
    owner_member_id: Optional[str]


class GroupService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_group(self, team_id: str, group_id: str) -> MemberGroup:
        result = await self.db.execute(
            select(MemberGroup).where(and_(MemberGroup.id == group_id, MemberGroup.team_id == team_id))
        )
        group = result.scalar_one_or_none()
        if group is None:
            raise NotFoundError("Group not found")
        return group

    async def _ensure_name_free(self, team_id: str, name: str, exclude_id: Optional[str] = None) -> None:
        stmt = select(MemberGroup.id).where(and_(MemberGroup.team_id == team_id, MemberGroup.name == name))
        if exclude_id:
            stmt = stmt.where(MemberGroup.id != exclude_id)
        result = await self.db.execute(stmt)
        if result.first() is not None:
            raise ConflictError("A group with this name already exists")

    async def create_group(self, team_id: str, name: str, avatar: Optional[str] = None) -> MemberGroup:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name cannot be empty")

        await self._ensure_name_free(team_id, name)

        group = MemberGroup(team_id=team_id, name=name, avatar=avatar)
        self.db.add(group)
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError("A group with this name already exists")

        log.info(f"Created group {group.id} ({name!r}) in team {team_id}")
        return group

    async def update_group(
        self,
        team_id: str,
        group_id: str,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
        members: Optional[List[GroupMemberEntry]] = None
    ) -> MemberGroup:
        """
        Rename a group and/or replace its member list.

        The member list is validated before anything is written:
        - every entry must be an active member of the team (ValidationError)
        - at most one owner (ConflictError)
        - with no owner, the first admin is promoted; with neither, ConflictError
        """
        group = await self.get_group(team_id, group_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Group name cannot be empty")
            if name != group.name:
                await self._ensure_name_free(team_id, name, exclude_id=group.id)
                group.name = name
        if avatar is not None:
            group.avatar = avatar

        if members is not None:
            entries = await self._validate_member_list(team_id, members)
            await self.db.execute(delete(group_memberships).where(group_memberships.c.group_id == group.id))
            if entries:
                await self.db.execute(
                    insert(group_memberships),
                    [
                        {"group_id": group.id, "member_id": entry.member_id, "role": entry.role}
                        for entry in entries
                    ]
                )
            log.info(f"Group {group.id} member list replaced ({len(entries)} members)")

        await self.db.flush()
        return group

    async def _validate_member_list(
        self,
        team_id: str,
        members: List[GroupMemberEntry]
    ) -> List[GroupMemberEntry]:
        if not members:
            return []

        ids = [entry.member_id for entry in members]
        if len(set(ids)) != len(ids):
            raise ValidationError("Member list contains duplicate members")

        result = await self.db.execute(
            select(TeamMember.id).where(
                and_(
                    TeamMember.id.in_(ids),
                    TeamMember.team_id == team_id,
                    TeamMember.status == TeamMemberStatus.ACTIVE
                )
            )
        )
        if len(set(result.scalars().all())) != len(ids):
            raise ValidationError("Some members do not exist or are not part of this team")

        entries = []
        for entry in members:
            try:
                role = GroupMemberRole(entry.role)
            except ValueError:
                raise ValidationError(f"Unknown group role: {entry.role!r}")
            entries.append(GroupMemberEntry(entry.member_id, role))
        owners = [entry for entry in entries if entry.role == GroupMemberRole.OWNER]
        if len(owners) > 1:
            raise ConflictError("A group can only have one owner")
        if not owners:
            admins = [entry for entry in entries if entry.role == GroupMemberRole.ADMIN]
            if not admins:
                raise ConflictError("A group must have an owner or an admin")
            log.info(f"No group owner given, promoting admin {admins[0].member_id}")
            admins[0].role = GroupMemberRole.OWNER
        return entries

    async def delete_group(self, team_id: str, group_id: str) -> None:
        """Delete a group, its memberships and every grant that targets it."""
        group = await self.get_group(team_id, group_id)

        grants = await self.db.execute(
            delete(Grant).where(
                and_(Grant.principal_kind == PrincipalKind.GROUP, Grant.principal_id == group.id)
            )
        )
        await self.db.execute(delete(group_memberships).where(group_memberships.c.group_id == group.id))
        await self.db.delete(group)
        await self.db.flush()

        log.info(f"Deleted group {group_id} in team {team_id} ({grants.rowcount} grants removed)")

    async def list_groups(self, team_id: str) -> List[GroupSummary]:
        result = await self.db.execute(
            select(MemberGroup).where(MemberGroup.team_id == team_id).order_by(MemberGroup.name)
        )
        groups = list(result.scalars().all())
        if not groups:
            return []

        group_ids = [group.id for group in groups]
        count_rows = await self.db.execute(
            select(group_memberships.c.group_id, func.count())
            .where(group_memberships.c.group_id.in_(group_ids))
            .group_by(group_memberships.c.group_id)
        )
        counts = dict(count_rows.all())

        owner_rows = await self.db.execute(
            select(group_memberships.c.group_id, group_memberships.c.member_id).where(
                and_(
                    group_memberships.c.group_id.in_(group_ids),
                    group_memberships.c.role == GroupMemberRole.OWNER
                )
            )
        )
        owners = dict(owner_rows.all())

        return [
            GroupSummary(group=group, member_count=counts.get(group.id, 0), owner_member_id=owners.get(group.id))
            for group in groups
        ]

    async def list_members(self, group_id: str) -> List[GroupMemberEntry]:
        result = await self.db.execute(
            select(group_memberships.c.member_id, group_memberships.c.role)
            .where(group_memberships.c.group_id == group_id)
            .order_by(group_memberships.c.joined_at)
        )
        return [GroupMemberEntry(member_id=row.member_id, role=row.role) for row in result.all()]

    async def delete_memberships_for_member(self, member_id: str) -> int:
        """
        Drop every group membership of a member. Safe to repeat.

        Where the member owned a group that keeps other members, the earliest
        remaining admin (else the earliest member) becomes the owner.
        """
        owned = await self.db.execute(
            select(group_memberships.c.group_id).where(
                and_(
                    group_memberships.c.member_id == member_id,
                    group_memberships.c.role == GroupMemberRole.OWNER
                )
            )
        )
        owned_group_ids = list(owned.scalars().all())

        result = await self.db.execute(
            delete(group_memberships).where(group_memberships.c.member_id == member_id)
        )

        for group_id in owned_group_ids:
            await self._promote_successor(group_id)

        return result.rowcount or 0

    async def _promote_successor(self, group_id: str) -> None:
        remaining = await self.list_members(group_id)
        if not remaining:
            return
        successor = next(
            (entry for entry in remaining if entry.role == GroupMemberRole.ADMIN),
            remaining[0]
        )
        await self.db.execute(
            update(group_memberships)
            .where(
                and_(
                    group_memberships.c.group_id == group_id,
                    group_memberships.c.member_id == successor.member_id
                )
            )
            .values(role=GroupMemberRole.OWNER)
        )
        log.info(f"Promoted member {successor.member_id} to owner of group {group_id}")
