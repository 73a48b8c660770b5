"""
Team, team member and member-exit journal models.

A team always has exactly one member with role ``owner``. Members are never
hard-deleted on removal or leave; their status flips to ``forbidden``.
"""
import enum
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, Text, DateTime, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from teamaccess.core.database.base import Base, TimestampMixin, generate_ulid


class TeamMemberRole(str, enum.Enum):
    """Role of a member inside its team."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class TeamMemberStatus(str, enum.Enum):
    """Membership status. ``forbidden`` covers both removed and left members."""
    ACTIVE = "active"
    FORBIDDEN = "forbidden"


class ExitKind(str, enum.Enum):
    LEAVE = "leave"
    REMOVE = "remove"


class ExitStatus(str, enum.Enum):
    RUNNING = "running"
    FAILED = "failed"
    COMPLETED = "completed"


class Team(Base, TimestampMixin):
    """Team aggregate root. ``owner_member_id`` mirrors the member holding role=owner."""
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Not a foreign key: the owner member row is created after the team row
    owner_member_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name!r}, owner={self.owner_member_id})>"


class TeamMember(Base, TimestampMixin):
    """A user's membership in one team."""
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("user_id", "team_id", name="uq_team_members_user_team"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    role: Mapped[TeamMemberRole] = mapped_column(
        SQLEnum(TeamMemberRole),
        default=TeamMemberRole.MEMBER,
        nullable=False,
        index=True
    )
    status: Mapped[TeamMemberStatus] = mapped_column(
        SQLEnum(TeamMemberStatus),
        default=TeamMemberStatus.ACTIVE,
        nullable=False,
        index=True
    )

    @property
    def is_active(self) -> bool:
        return self.status == TeamMemberStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<TeamMember(id={self.id}, team_id={self.team_id}, role={self.role}, status={self.status})>"


class MemberExitJournal(Base, TimestampMixin):
    """
    Resume point for a leave/remove run.

    ``completed_steps`` lists step names in the order they finished and
    ``counts`` holds the row count each of them touched. A later run for the
    same member skips everything already listed.
    """
    __tablename__ = "member_exit_journal"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    member_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("team_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    kind: Mapped[ExitKind] = mapped_column(SQLEnum(ExitKind), nullable=False)
    status: Mapped[ExitStatus] = mapped_column(
        SQLEnum(ExitStatus),
        default=ExitStatus.RUNNING,
        nullable=False,
        index=True
    )
    target_owner_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    completed_steps: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    counts: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    failed_step: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<MemberExitJournal(id={self.id}, member_id={self.member_id}, status={self.status})>"
