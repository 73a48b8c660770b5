"""
Seed script to populate a demo team.

Run this script after database initialization to create:
- A demo team and its owner
- A handful of members
- A small org tree and a member group
- Team-level manage permission for one admin

Prints a Bearer token for the owner so the API can be tried right away.

Usage:
    uv run python -m scripts.seed_team
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core.database.engine import get_db, init_db
from teamaccess.features.groups.models import GroupMemberRole
from teamaccess.features.groups.service import GroupService, GroupMemberEntry
from teamaccess.features.orgs.service import OrgTree
from teamaccess.features.permissions.constants import ResourceType, READ_PERMISSION, WRITE_PERMISSION, MANAGE_PERMISSION
from teamaccess.features.permissions.ledger import PermissionLedger
from teamaccess.features.permissions.principals import Principal
from teamaccess.features.teams.models import Team, TeamMemberRole
from teamaccess.features.teams.service import TeamAggregateRoot
from teamaccess.features.users.auth import create_access_token
from teamaccess.features.users.models import User
from teamaccess.utils import get_logger, setup_logging


log = get_logger(__name__)


DEMO_TEAM = "Demo Team"
DEMO_OWNER = "demo-owner"

DEMO_MEMBERS = [
    # (username, display name, role)
    ("ada", "Ada Lovelace", TeamMemberRole.ADMIN),
    ("grace", "Grace Hopper", TeamMemberRole.MEMBER),
    ("alan", "Alan Turing", TeamMemberRole.MEMBER),
    ("edsger", "Edsger Dijkstra", TeamMemberRole.MEMBER),
]

# parent name (None for top level) -> child names
DEMO_ORGS = {
    None: ["Engineering", "Sales"],
    "Engineering": ["Backend", "Frontend"],
}


async def seed_team(db: AsyncSession):
    """
    Create the demo team with its owner.

    Returns:
        (team, owner member), or None when the team already exists
    """
    existing = await db.execute(select(Team).where(Team.name == DEMO_TEAM))
    if existing.scalars().first():
        log.info(f"Team '{DEMO_TEAM}' already exists, skipping")
        return None

    result = await db.execute(select(User).where(User.username == DEMO_OWNER))
    user = result.scalars().first()
    if user is None:
        user = User(username=DEMO_OWNER)
        db.add(user)
        await db.flush()

    teams = TeamAggregateRoot(db)
    team = await teams.create_team(user.id, DEMO_TEAM)
    owner = await teams.get_owner(team.id)
    log.info(f"Created team '{DEMO_TEAM}' owned by {DEMO_OWNER}")
    return team, owner


async def seed_members(db: AsyncSession, team_id: str) -> dict:
    """Add the demo members. Returns username -> TeamMember."""
    teams = TeamAggregateRoot(db)
    members = {}
    for username, name, role in DEMO_MEMBERS:
        members[username] = await teams.add_member(team_id, username, role=role, name=name)
        log.info(f"Added member: {name} ({role.value})")
    return members


async def seed_orgs(db: AsyncSession, team_id: str, members: dict) -> dict:
    """Create the org tree and place members in it. Returns name -> OrgNode."""
    tree = OrgTree(db)
    nodes = {}
    for parent_name, children in DEMO_ORGS.items():
        parent_id = nodes[parent_name].id if parent_name else None
        for child in children:
            nodes[child] = await tree.create_node(team_id, parent_id, child)
            log.info(f"Created org: {child}")

    await tree.update_members(team_id, nodes["Backend"].id, [members["grace"].id, members["alan"].id])
    await tree.update_members(team_id, nodes["Sales"].id, [members["edsger"].id])
    return nodes


async def seed_groups(db: AsyncSession, team_id: str, members: dict):
    groups = GroupService(db)
    reviewers = await groups.create_group(team_id, "Reviewers")
    await groups.update_group(
        team_id,
        reviewers.id,
        members=[
            GroupMemberEntry(members["ada"].id, GroupMemberRole.OWNER),
            GroupMemberEntry(members["grace"].id, GroupMemberRole.MEMBER),
        ]
    )
    log.info("Created group 'Reviewers'")
    return reviewers


async def main():
    """Main function to seed the demo team."""
    setup_logging()
    log.info("Starting demo team seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            created = await seed_team(db)
            if created is None:
                break
            team, owner = created

            members = await seed_members(db, team.id)
            await seed_orgs(db, team.id, members)
            await seed_groups(db, team.id, members)

            # Ada manages the whole team
            await PermissionLedger(db).upsert_grant(
                ResourceType.TEAM,
                team.id,
                team.id,
                Principal.member(members["ada"].id),
                READ_PERMISSION | WRITE_PERMISSION | MANAGE_PERMISSION,
            )
            await db.commit()

            log.info("Demo team seeding completed successfully!")
            log.info("")
            log.info(f"Owner token: {create_access_token(owner.id, team.id)}")

        except Exception as e:
            log.error(f"Error seeding demo team: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
