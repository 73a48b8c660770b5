"""
Permission bit values and resource types.
"""
import enum


READ_PERMISSION = 0b100
WRITE_PERMISSION = 0b010
MANAGE_PERMISSION = 0b001

# Full access, returned by the team-owner rule
OWNER_PERMISSION = 0xFFFFFFFF

DEFAULT_COLLABORATOR_PERMISSION = READ_PERMISSION


class ResourceType(str, enum.Enum):
    """Kinds of resources grants can target. For ``team`` the resource id is the team id."""
    TEAM = "team"
    APP = "app"
    DATASET = "dataset"


def has_permission_bits(permission: int, required: int) -> bool:
    return permission & required == required
