"""
Pydantic schemas for collaborator management.

The wire format is camelCase (``principalKind``, ``defaultPermission``);
snake_case names are accepted too.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from teamaccess.features.permissions.constants import DEFAULT_COLLABORATOR_PERMISSION
from teamaccess.features.permissions.principals import PrincipalKind


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Requests
# ============================================================================

class CollaboratorEntryIn(CamelModel):
    """One principal in an update request; ``permission`` overrides the default."""
    id: str = Field(..., min_length=1)
    permission: Optional[int] = Field(None, ge=0)


class CollaboratorUpdateRequest(CamelModel):
    members: Optional[List[CollaboratorEntryIn]] = None
    groups: Optional[List[CollaboratorEntryIn]] = None
    orgs: Optional[List[CollaboratorEntryIn]] = None
    default_permission: int = Field(DEFAULT_COLLABORATOR_PERMISSION, ge=0)


class CollaboratorDeleteRequest(CamelModel):
    principal_kind: PrincipalKind
    principal_id: str = Field(..., min_length=1)


# ============================================================================
# Responses
# ============================================================================

class PrincipalCounts(CamelModel):
    members: int = 0
    groups: int = 0
    orgs: int = 0


class CollaboratorUpdateResponse(CamelModel):
    applied_counts: PrincipalCounts
    ignored_counts: PrincipalCounts


class CollaboratorResponse(CamelModel):
    principal_kind: PrincipalKind
    principal_id: str
    display_name: str
    avatar: str
    permission: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class EffectivePermissionResponse(CamelModel):
    resource_type: str
    resource_id: str
    member_id: str
    permission: int
    has_read: bool
    has_write: bool
    has_manage: bool


def counts_by_kind(counts: Dict[PrincipalKind, int]) -> PrincipalCounts:
    return PrincipalCounts(
        members=counts.get(PrincipalKind.MEMBER, 0),
        groups=counts.get(PrincipalKind.GROUP, 0),
        orgs=counts.get(PrincipalKind.ORG, 0),
    )
