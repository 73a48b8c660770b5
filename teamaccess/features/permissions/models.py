"""
Grant model: one permission bitmask per (resource, principal).
"""
from sqlalchemy import String, ForeignKey, Integer, CheckConstraint, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from teamaccess.core.database.base import Base, TimestampMixin, generate_ulid
from teamaccess.features.permissions.constants import ResourceType
from teamaccess.features.permissions.principals import Principal, PrincipalKind


class Grant(Base, TimestampMixin):
    """
    Resource-level access grant.

    The principal is stored as (kind, id) so that exactly one identity is set
    by construction. Missing rows mean no access.
    """
    __tablename__ = "grants"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "resource_id", "principal_kind", "principal_id",
            name="uq_grants_resource_principal"
        ),
        CheckConstraint("permission >= 0", name="ck_grants_permission_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    resource_type: Mapped[ResourceType] = mapped_column(SQLEnum(ResourceType), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    team_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    principal_kind: Mapped[PrincipalKind] = mapped_column(SQLEnum(PrincipalKind), nullable=False)
    principal_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)

    permission: Mapped[int] = mapped_column(Integer, nullable=False)

    @property
    def principal(self) -> Principal:
        return Principal(self.principal_kind, self.principal_id)

    def __repr__(self) -> str:
        return (
            f"<Grant(id={self.id}, resource={self.resource_type}:{self.resource_id}, "
            f"principal={self.principal_kind}:{self.principal_id}, permission={self.permission})>"
        )
