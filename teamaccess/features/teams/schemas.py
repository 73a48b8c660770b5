"""
Pydantic schemas for teams and team members.
"""
from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel, Field, ConfigDict

from teamaccess.features.teams.models import TeamMemberRole, TeamMemberStatus


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    avatar: Optional[str] = Field(None, max_length=500)


class TeamResponse(BaseModel):
    id: str
    name: str
    avatar: Optional[str] = None
    owner_member_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChangeOwnerRequest(BaseModel):
    member_id: str = Field(..., min_length=1)


class MemberCreate(BaseModel):
    """Add a user by username; the account is created when it does not exist yet."""
    username: str = Field(..., min_length=1, max_length=255)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: TeamMemberRole = TeamMemberRole.MEMBER


class MemberRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class MemberResponse(BaseModel):
    id: str
    team_id: str
    user_id: str
    name: str
    avatar: Optional[str] = None
    role: TeamMemberRole
    status: TeamMemberStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExitResponse(BaseModel):
    member_id: str
    owner_member_id: str
    counts: Dict[str, int]
    resumed: bool
