"""
OrgTree: hierarchy maintenance and ancestry/subtree queries.

Nodes keep a parent reference; ``org_ancestors`` holds one row per
(ancestor, descendant) pair with the node itself at depth 0, written once
when the node is created. Nodes cannot be re-parented, so the index never
needs rebuilding.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, delete, insert, func, and_, literal
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.errors import ConflictError, NotFoundError, ValidationError
from teamaccess.features.orgs.models import OrgNode, org_ancestors, org_memberships
from teamaccess.features.permissions.models import Grant
from teamaccess.features.permissions.principals import PrincipalKind
from teamaccess.features.teams.models import TeamMember, TeamMemberStatus
from teamaccess.utils import get_logger


log = get_logger(__name__)

MAX_NAME_LENGTH = 50


@dataclass
class OrgNodeSummary:
    member_count: int
    descendant_count: int

    @property
    def total(self) -> int:
        return self.member_count + self.descendant_count


def normalize_parent_id(parent_id: Optional[str]) -> Optional[str]:
    """
    Map every "top level" spelling to None.

    Older clients send an empty string for the team root; None is the only
    value stored.
    """
    if parent_id is None:
        return None
    parent_id = parent_id.strip()
    return parent_id or None


class OrgTree:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def get_node(self, team_id: str, node_id: str) -> OrgNode:
        result = await self.db.execute(
            select(OrgNode).where(and_(OrgNode.id == node_id, OrgNode.team_id == team_id))
        )
        node = result.scalar_one_or_none()
        if node is None:
            raise NotFoundError("Org node not found")
        return node

    async def create_node(
        self,
        team_id: str,
        parent_id: Optional[str],
        name: str,
        avatar: Optional[str] = None,
        description: Optional[str] = None
    ) -> OrgNode:
        """
        Create a node under ``parent_id`` (None for a top-level node).

        Raises:
            ValidationError: empty or over-long name
            NotFoundError: parent does not exist in this team
            ConflictError: a sibling already uses the name
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Org name cannot be empty")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Org name cannot exceed {MAX_NAME_LENGTH} characters")

        parent_id = normalize_parent_id(parent_id)
        parent = await self.get_node(team_id, parent_id) if parent_id else None

        sibling_filter = OrgNode.parent_id.is_(None) if parent is None else OrgNode.parent_id == parent.id
        existing = await self.db.execute(
            select(OrgNode.id).where(
                and_(OrgNode.team_id == team_id, sibling_filter, OrgNode.name == name)
            )
        )
        if existing.first() is not None:
            raise ConflictError("An org with this name already exists under the same parent")

        node = OrgNode(
            team_id=team_id,
            parent_id=parent.id if parent else None,
            depth=parent.depth + 1 if parent else 0,
            name=name,
            avatar=avatar,
            description=description or "",
        )
        self.db.add(node)
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError("An org with this name already exists under the same parent")

        # Self row, then one row per ancestor of the parent, one level deeper
        await self.db.execute(
            insert(org_ancestors).values(ancestor_id=node.id, descendant_id=node.id, depth=0)
        )
        if parent is not None:
            await self.db.execute(
                insert(org_ancestors).from_select(
                    ["ancestor_id", "descendant_id", "depth"],
                    select(
                        org_ancestors.c.ancestor_id,
                        literal(node.id),
                        org_ancestors.c.depth + 1,
                    ).where(org_ancestors.c.descendant_id == parent.id)
                )
            )

        log.info(f"Created org node {node.id} ({name!r}) in team {team_id} under {parent_id or 'top level'}")
        return node

    async def list_children(
        self,
        team_id: str,
        parent_id: Optional[str] = None,
        search_key: Optional[str] = None
    ) -> List[OrgNode]:
        """Direct children of ``parent_id``, or the team's top-level nodes when it is None."""
        parent_id = normalize_parent_id(parent_id)
        if parent_id is not None:
            await self.get_node(team_id, parent_id)
            stmt = select(OrgNode).where(and_(OrgNode.team_id == team_id, OrgNode.parent_id == parent_id))
        else:
            stmt = select(OrgNode).where(and_(OrgNode.team_id == team_id, OrgNode.parent_id.is_(None)))

        if search_key:
            stmt = stmt.where(OrgNode.name.ilike(f"%{search_key}%"))

        result = await self.db.execute(stmt.order_by(OrgNode.name))
        return list(result.scalars().all())

    async def list_descendants(self, team_id: str, node_id: str) -> List[OrgNode]:
        """Every node strictly below ``node_id``, shallowest first."""
        await self.get_node(team_id, node_id)
        result = await self.db.execute(
            select(OrgNode)
            .join(org_ancestors, org_ancestors.c.descendant_id == OrgNode.id)
            .where(and_(org_ancestors.c.ancestor_id == node_id, org_ancestors.c.depth > 0))
            .order_by(org_ancestors.c.depth, OrgNode.name)
        )
        return list(result.scalars().all())

    async def ancestor_chain(self, team_id: str, node_id: str) -> List[OrgNode]:
        """The node itself followed by its parent, grandparent, ... up to its top-level node."""
        await self.get_node(team_id, node_id)
        result = await self.db.execute(
            select(OrgNode)
            .join(org_ancestors, org_ancestors.c.ancestor_id == OrgNode.id)
            .where(org_ancestors.c.descendant_id == node_id)
            .order_by(org_ancestors.c.depth)
        )
        return list(result.scalars().all())

    async def ancestor_ids(self, node_ids: Iterable[str]) -> Set[str]:
        """Union of the given nodes and all of their ancestors."""
        node_ids = set(node_ids)
        if not node_ids:
            return set()
        result = await self.db.execute(
            select(org_ancestors.c.ancestor_id).where(org_ancestors.c.descendant_id.in_(node_ids))
        )
        return set(result.scalars().all())

    async def summarize(self, node_ids: List[str]) -> Dict[str, OrgNodeSummary]:
        """Direct member count and descendant count per node."""
        if not node_ids:
            return {}

        member_rows = await self.db.execute(
            select(org_memberships.c.org_id, func.count())
            .where(org_memberships.c.org_id.in_(node_ids))
            .group_by(org_memberships.c.org_id)
        )
        member_counts = dict(member_rows.all())

        descendant_rows = await self.db.execute(
            select(org_ancestors.c.ancestor_id, func.count())
            .where(and_(org_ancestors.c.ancestor_id.in_(node_ids), org_ancestors.c.depth > 0))
            .group_by(org_ancestors.c.ancestor_id)
        )
        descendant_counts = dict(descendant_rows.all())

        return {
            node_id: OrgNodeSummary(
                member_count=member_counts.get(node_id, 0),
                descendant_count=descendant_counts.get(node_id, 0),
            )
            for node_id in node_ids
        }

    async def delete_node(self, team_id: str, node_id: str) -> None:
        """
        Delete a leaf node together with its memberships and the grants that target it.

        Raises:
            ConflictError: the node still has children
        """
        node = await self.get_node(team_id, node_id)

        children = await self.db.execute(select(OrgNode.id).where(OrgNode.parent_id == node.id).limit(1))
        if children.first() is not None:
            raise ConflictError("Org node still has child orgs; delete them first")

        grants = await self.db.execute(
            delete(Grant).where(
                and_(Grant.principal_kind == PrincipalKind.ORG, Grant.principal_id == node.id)
            )
        )
        await self.db.execute(delete(org_memberships).where(org_memberships.c.org_id == node.id))
        await self.db.execute(delete(org_ancestors).where(org_ancestors.c.descendant_id == node.id))
        await self.db.delete(node)
        await self.db.flush()

        log.info(f"Deleted org node {node_id} in team {team_id} ({grants.rowcount} grants removed)")

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    async def list_member_ids(self, org_id: str) -> List[str]:
        result = await self.db.execute(
            select(org_memberships.c.member_id).where(org_memberships.c.org_id == org_id)
        )
        return list(result.scalars().all())

    async def update_members(self, team_id: str, org_id: str, member_ids: List[str]) -> Tuple[int, int]:
        """
        Replace the node's member set with the active team members among ``member_ids``.

        Unknown or inactive members are dropped and counted, not rejected.

        Returns:
            (applied, ignored)
        """
        node = await self.get_node(team_id, org_id)
        requested = list(dict.fromkeys(member_ids))

        valid_ids: List[str] = []
        if requested:
            result = await self.db.execute(
                select(TeamMember.id).where(
                    and_(
                        TeamMember.id.in_(requested),
                        TeamMember.team_id == team_id,
                        TeamMember.status == TeamMemberStatus.ACTIVE
                    )
                )
            )
            found = set(result.scalars().all())
            valid_ids = [member_id for member_id in requested if member_id in found]

        ignored = [member_id for member_id in requested if member_id not in valid_ids]
        if ignored:
            log.warning(f"Ignoring members not active in team {team_id} for org {org_id}: {', '.join(ignored)}")

        await self.db.execute(delete(org_memberships).where(org_memberships.c.org_id == node.id))
        if valid_ids:
            await self.db.execute(
                insert(org_memberships),
                [{"org_id": node.id, "member_id": member_id, "team_id": team_id} for member_id in valid_ids]
            )
        await self.db.flush()

        log.info(f"Org {org_id} now has {len(valid_ids)} members ({len(ignored)} ignored)")
        return len(valid_ids), len(ignored)

    async def remove_member(self, team_id: str, org_id: str, member_id: str) -> None:
        await self.get_node(team_id, org_id)

        member = await self.db.execute(
            select(TeamMember.id).where(
                and_(
                    TeamMember.id == member_id,
                    TeamMember.team_id == team_id,
                    TeamMember.status == TeamMemberStatus.ACTIVE
                )
            )
        )
        if member.first() is None:
            raise NotFoundError("Member not found or not part of this team")

        result = await self.db.execute(
            delete(org_memberships).where(
                and_(org_memberships.c.org_id == org_id, org_memberships.c.member_id == member_id)
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Member is not in this org")

        log.info(f"Removed member {member_id} from org {org_id}")

    async def delete_memberships_for_member(self, member_id: str) -> int:
        """Drop every org membership of a member. Safe to repeat."""
        result = await self.db.execute(
            delete(org_memberships).where(org_memberships.c.member_id == member_id)
        )
        return result.rowcount or 0
