"""
Organization hierarchy models.

The tree is stored as a parent reference on each node plus a materialized
ancestor index (``org_ancestors``): one row per (ancestor, descendant) pair,
including the node itself at depth 0. Ancestor and subtree queries are single
indexed lookups; no path strings are stored or compared.

Top-level nodes have ``parent_id = NULL``. There is no synthetic team root node.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Integer, Text, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from teamaccess.core.database.base import Base, TimestampMixin, generate_ulid


# Materialized ancestor index (closure rows, self included at depth 0)
org_ancestors = Table(
    "org_ancestors",
    Base.metadata,
    Column("ancestor_id", String(26), ForeignKey("org_nodes.id", ondelete="CASCADE"), primary_key=True),
    Column("descendant_id", String(26), ForeignKey("org_nodes.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("depth", Integer, nullable=False),
)

# Member-to-node relationship (many-to-many)
org_memberships = Table(
    "org_memberships",
    Base.metadata,
    Column("org_id", String(26), ForeignKey("org_nodes.id", ondelete="CASCADE"), primary_key=True),
    Column("member_id", String(26), ForeignKey("team_members.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("team_id", String(26), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class OrgNode(Base, TimestampMixin):
    """
    Organizational unit inside a team.

    Sibling names are unique under the same parent. The database constraint
    covers child nodes; top-level uniqueness (NULL parent) is checked by OrgTree.
    """
    __tablename__ = "org_nodes"
    __table_args__ = (
        UniqueConstraint("team_id", "parent_id", "name", name="uq_org_nodes_sibling_name"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("org_nodes.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<OrgNode(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"
