"""
Display names and avatars for principals, used when listing collaborators.
"""
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.features.groups.models import MemberGroup
from teamaccess.features.orgs.models import OrgNode
from teamaccess.features.permissions.principals import Principal, PrincipalKind
from teamaccess.features.teams.models import TeamMember
from teamaccess.features.users.models import User


DEFAULT_AVATARS = {
    PrincipalKind.MEMBER: "/icon/human.svg",
    PrincipalKind.GROUP: "/icon/group.svg",
    PrincipalKind.ORG: "/icon/org.svg",
}

PLACEHOLDER_NAMES = {
    PrincipalKind.MEMBER: "Unknown member",
    PrincipalKind.GROUP: "Unknown group",
    PrincipalKind.ORG: "Unknown org",
}


@dataclass(frozen=True)
class PrincipalDisplay:
    name: str
    avatar: str


def placeholder_display(principal: Principal) -> PrincipalDisplay:
    return PrincipalDisplay(
        name=PLACEHOLDER_NAMES[principal.kind],
        avatar=DEFAULT_AVATARS[principal.kind],
    )


class PrincipalDisplayLookup(Protocol):
    async def describe(self, principal: Principal) -> PrincipalDisplay:
        ...


class SqlPrincipalDisplayLookup:
    """Reads names and avatars from the member, group and org tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def describe(self, principal: Principal) -> PrincipalDisplay:
        if principal.kind == PrincipalKind.MEMBER:
            result = await self.db.execute(
                select(TeamMember.name, TeamMember.avatar, User.avatar_url)
                .join(User, User.id == TeamMember.user_id)
                .where(TeamMember.id == principal.id)
            )
            row = result.first()
            if row is None:
                return placeholder_display(principal)
            return PrincipalDisplay(
                name=row.name,
                avatar=row.avatar or row.avatar_url or DEFAULT_AVATARS[principal.kind],
            )

        model = MemberGroup if principal.kind == PrincipalKind.GROUP else OrgNode
        result = await self.db.execute(select(model.name, model.avatar).where(model.id == principal.id))
        row = result.first()
        if row is None:
            return placeholder_display(principal)
        return PrincipalDisplay(name=row.name, avatar=row.avatar or DEFAULT_AVATARS[principal.kind])
