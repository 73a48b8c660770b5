"""
Principal expansion for permission resolution.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.errors import NotFoundError
from teamaccess.features.groups.models import group_memberships
from teamaccess.features.orgs.models import org_memberships
from teamaccess.features.orgs.service import OrgTree
from teamaccess.features.permissions.principals import PrincipalSet
from teamaccess.features.teams.models import TeamMember, TeamMemberStatus
from teamaccess.utils import get_logger


log = get_logger(__name__)


class PrincipalResolver:
    """
    Expands a member into its direct id, its groups and its org nodes.

    Org inheritance flows upward: a member of a node also carries every
    ancestor of that node. Nothing is cached between calls.
    """

    def __init__(self, db: AsyncSession, org_tree: OrgTree | None = None):
        self.db = db
        self.org_tree = org_tree or OrgTree(db)

    async def expand(self, member_id: str) -> PrincipalSet:
        result = await self.db.execute(
            select(TeamMember.team_id, TeamMember.status).where(TeamMember.id == member_id)
        )
        row = result.first()
        if row is None or row.status != TeamMemberStatus.ACTIVE:
            raise NotFoundError("Team member not found or not active")

        group_result = await self.db.execute(
            select(group_memberships.c.group_id).where(group_memberships.c.member_id == member_id)
        )
        group_ids = frozenset(group_result.scalars().all())

        org_result = await self.db.execute(
            select(org_memberships.c.org_id).where(org_memberships.c.member_id == member_id)
        )
        direct_org_ids = set(org_result.scalars().all())
        org_ids = await self.org_tree.ancestor_ids(direct_org_ids)

        log.debug(
            "Expanded member %s: %d groups, %d direct orgs, %d orgs with ancestors",
            member_id, len(group_ids), len(direct_org_ids), len(org_ids)
        )
        return PrincipalSet(
            member_id=member_id,
            team_id=row.team_id,
            group_ids=group_ids,
            org_ids=frozenset(org_ids),
        )
