"""
Pydantic schemas for the org hierarchy.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class OrgNodeCreate(BaseModel):
    """``parent_id`` null (or empty, for older clients) creates a top-level node."""
    parent_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=50)
    avatar: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = Field(None, max_length=1000)


class OrgNodeResponse(BaseModel):
    id: str
    team_id: str
    parent_id: Optional[str] = None
    depth: int
    name: str
    avatar: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrgNodeListItem(OrgNodeResponse):
    """Node with the counts shown in the org browser."""
    member_count: int = 0
    descendant_count: int = 0
    total: int = 0


class OrgMembersUpdate(BaseModel):
    member_ids: List[str]


class OrgMembersUpdateResponse(BaseModel):
    applied: int
    ignored: int


class OrgMembersResponse(BaseModel):
    org_id: str
    member_ids: List[str]
