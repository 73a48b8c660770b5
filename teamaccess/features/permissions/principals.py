"""
Principal identities: the member, group or org node a grant targets.
"""
import enum
from dataclasses import dataclass, field
from typing import FrozenSet

from teamaccess.core.errors import ValidationError


class PrincipalKind(str, enum.Enum):
    MEMBER = "member"
    GROUP = "group"
    ORG = "org"


@dataclass(frozen=True)
class Principal:
    """
    Exactly one identity a grant can target.

    Build with ``Principal.member(id)``, ``Principal.group(id)`` or
    ``Principal.org(id)``; the kind and id are checked at construction.
    """
    kind: PrincipalKind
    id: str

    def __post_init__(self):
        try:
            kind = PrincipalKind(self.kind)
        except ValueError:
            raise ValidationError(f"Unknown principal kind: {self.kind!r}")
        object.__setattr__(self, "kind", kind)
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValidationError("Principal id must be a non-empty string")

    @classmethod
    def member(cls, member_id: str) -> "Principal":
        return cls(PrincipalKind.MEMBER, member_id)

    @classmethod
    def group(cls, group_id: str) -> "Principal":
        return cls(PrincipalKind.GROUP, group_id)

    @classmethod
    def org(cls, org_id: str) -> "Principal":
        return cls(PrincipalKind.ORG, org_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass(frozen=True)
class PrincipalSet:
    """Every identity whose grants apply to one member."""
    member_id: str
    team_id: str
    group_ids: FrozenSet[str] = field(default_factory=frozenset)
    org_ids: FrozenSet[str] = field(default_factory=frozenset)

    def contains(self, principal: Principal) -> bool:
        if principal.kind == PrincipalKind.MEMBER:
            return principal.id == self.member_id
        if principal.kind == PrincipalKind.GROUP:
            return principal.id in self.group_ids
        return principal.id in self.org_ids
