"""
TeamAggregateRoot: team identity, membership records and the single-owner rule.
"""
from typing import List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.errors import ConflictError, NotFoundError, ValidationError
from teamaccess.features.teams.models import Team, TeamMember, TeamMemberRole, TeamMemberStatus
from teamaccess.features.users.models import User
from teamaccess.utils import get_logger


log = get_logger(__name__)

DEFAULT_TEAM_AVATAR = "/icon/logo.svg"
DEFAULT_MEMBER_AVATAR = "/icon/human.svg"


class TeamAggregateRoot:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Team
    # ------------------------------------------------------------------

    async def get_team(self, team_id: str) -> Team:
        team = await self.db.get(Team, team_id)
        if team is None:
            raise NotFoundError("Team not found")
        return team

    async def create_team(self, user_id: str, name: str, avatar: Optional[str] = None) -> Team:
        """
        Create a team with ``user_id`` as its owner member.

        Raises:
            ValidationError: empty name
            NotFoundError: unknown user
            ConflictError: team name already taken
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name cannot be empty")

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")

        existing = await self.db.execute(select(Team.id).where(Team.name == name))
        if existing.first() is not None:
            raise ConflictError("A team with this name already exists")

        team = Team(name=name, avatar=avatar or DEFAULT_TEAM_AVATAR)
        self.db.add(team)
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError("A team with this name already exists")

        owner = TeamMember(
            team_id=team.id,
            user_id=user.id,
            name=user.username,
            avatar=user.avatar_url or DEFAULT_MEMBER_AVATAR,
            role=TeamMemberRole.OWNER,
            status=TeamMemberStatus.ACTIVE,
        )
        self.db.add(owner)
        await self.db.flush()

        team.owner_member_id = owner.id
        await self.db.flush()

        log.info(f"Created team {team.id} ({name!r}) owned by member {owner.id}")
        return team

    async def get_owner(self, team_id: str, for_update: bool = False) -> TeamMember:
        """
        The team's active owner member.

        Raises:
            NotFoundError: the team has no active owner
        """
        stmt = select(TeamMember).where(
            and_(
                TeamMember.team_id == team_id,
                TeamMember.role == TeamMemberRole.OWNER,
                TeamMember.status == TeamMemberStatus.ACTIVE
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        owner = result.scalars().first()
        if owner is None:
            raise NotFoundError("Team owner not found")
        return owner

    async def change_owner(self, team_id: str, new_owner_member_id: str) -> TeamMember:
        """
        Transfer team ownership in one write.

        The current owner becomes a plain member and ``new_owner_member_id``
        becomes the owner. Both rows are locked for the duration of the
        request transaction.

        Raises:
            ValidationError: target is not an active member of this team
            NotFoundError: the team has no owner to demote
            ConflictError: the team would not end up with exactly one owner
        """
        team = await self.get_team(team_id)

        result = await self.db.execute(
            select(TeamMember)
            .where(and_(TeamMember.id == new_owner_member_id, TeamMember.team_id == team_id))
            .with_for_update()
        )
        target = result.scalar_one_or_none()
        if target is None or not target.is_active:
            raise ValidationError("New owner must be an active member of this team")

        current = await self.get_owner(team_id, for_update=True)
        if current.id == target.id:
            log.info(f"Member {target.id} already owns team {team_id}")
            return target

        current.role = TeamMemberRole.MEMBER
        target.role = TeamMemberRole.OWNER
        team.owner_member_id = target.id
        await self.db.flush()

        owners = await self.db.execute(
            select(func.count()).select_from(TeamMember).where(
                and_(TeamMember.team_id == team_id, TeamMember.role == TeamMemberRole.OWNER)
            )
        )
        if owners.scalar_one() != 1:
            raise ConflictError("Ownership transfer would leave the team without exactly one owner")

        log.info(f"Team {team_id} ownership moved from {current.id} to {target.id}")
        return target

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def get_member(self, team_id: str, member_id: str) -> TeamMember:
        result = await self.db.execute(
            select(TeamMember).where(and_(TeamMember.id == member_id, TeamMember.team_id == team_id))
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("Team member not found")
        return member

    async def add_member(
        self,
        team_id: str,
        username: str,
        role: TeamMemberRole = TeamMemberRole.MEMBER,
        name: Optional[str] = None
    ) -> TeamMember:
        """
        Add a user to the team, creating the account when the username is new.

        Raises:
            ValidationError: empty username, or an attempt to add an owner
            ConflictError: the user is already a member of this team
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username cannot be empty")
        role = TeamMemberRole(role)
        if role == TeamMemberRole.OWNER:
            raise ValidationError("Owners are assigned through an ownership transfer")

        await self.get_team(team_id)

        result = await self.db.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(username=username, avatar_url=DEFAULT_MEMBER_AVATAR)
            self.db.add(user)
            await self.db.flush()
        else:
            existing = await self.db.execute(
                select(TeamMember.id).where(and_(TeamMember.user_id == user.id, TeamMember.team_id == team_id))
            )
            if existing.first() is not None:
                raise ConflictError("User is already a member of this team")

        member = TeamMember(
            team_id=team_id,
            user_id=user.id,
            name=(name or username).strip(),
            avatar=user.avatar_url or DEFAULT_MEMBER_AVATAR,
            role=role,
            status=TeamMemberStatus.ACTIVE,
        )
        self.db.add(member)
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError("User is already a member of this team")

        log.info(f"Added user {user.id} to team {team_id} as member {member.id} ({role.value})")
        return member

    async def list_members(
        self,
        team_id: str,
        status: Optional[TeamMemberStatus] = None,
        search_key: Optional[str] = None
    ) -> List[TeamMember]:
        stmt = select(TeamMember).where(TeamMember.team_id == team_id)
        if status is not None:
            stmt = stmt.where(TeamMember.status == status)
        if search_key:
            stmt = stmt.where(TeamMember.name.ilike(f"%{search_key}%"))

        result = await self.db.execute(stmt.order_by(TeamMember.created_at, TeamMember.id))
        return list(result.scalars().all())

    async def rename_member(self, team_id: str, member_id: str, name: str) -> TeamMember:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Member name cannot be empty")

        member = await self.get_member(team_id, member_id)
        member.name = name
        await self.db.flush()

        log.info(f"Renamed member {member_id} in team {team_id}")
        return member
