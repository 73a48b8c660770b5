"""
Member group models.

A group with any members always has exactly one member holding the group
``owner`` role.
"""
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, DateTime, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from teamaccess.core.database.base import Base, TimestampMixin, generate_ulid


class GroupMemberRole(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


group_memberships = Table(
    "group_memberships",
    Base.metadata,
    Column("group_id", String(26), ForeignKey("member_groups.id", ondelete="CASCADE"), primary_key=True),
    Column("member_id", String(26), ForeignKey("team_members.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("role", SQLEnum(GroupMemberRole), nullable=False, default=GroupMemberRole.MEMBER),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class MemberGroup(Base, TimestampMixin):
    """Named set of team members that can be granted access as a unit."""
    __tablename__ = "member_groups"
    __table_args__ = (
        UniqueConstraint("team_id", "name", name="uq_member_groups_team_name"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<MemberGroup(id={self.id}, name={self.name!r}, team_id={self.team_id})>"
