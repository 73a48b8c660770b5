"""
Pydantic schemas for member groups.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from teamaccess.features.groups.models import GroupMemberRole


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    avatar: Optional[str] = Field(None, max_length=500)


class GroupMemberIn(BaseModel):
    member_id: str = Field(..., min_length=1)
    role: GroupMemberRole = GroupMemberRole.MEMBER


class GroupUpdate(BaseModel):
    """Any field left out is unchanged; ``members`` replaces the whole member list."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    avatar: Optional[str] = Field(None, max_length=500)
    members: Optional[List[GroupMemberIn]] = None


class GroupMemberOut(BaseModel):
    member_id: str
    role: GroupMemberRole

    model_config = ConfigDict(from_attributes=True)


class GroupResponse(BaseModel):
    id: str
    team_id: str
    name: str
    avatar: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GroupListItem(GroupResponse):
    member_count: int = 0
    owner_member_id: Optional[str] = None


class GroupDetail(GroupResponse):
    members: List[GroupMemberOut] = []
