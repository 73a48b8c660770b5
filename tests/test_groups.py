"""
Tests for member groups and the group owner rule.
"""
import pytest
from sqlalchemy import select, func, update

from teamaccess.core.database.base import generate_ulid
from teamaccess.core.errors import ConflictError, NotFoundError, ValidationError
from teamaccess.features.groups.models import GroupMemberRole
from teamaccess.features.groups.service import GroupService, GroupMemberEntry
from teamaccess.features.permissions.constants import ResourceType, READ_PERMISSION
from teamaccess.features.permissions.ledger import PermissionLedger
from teamaccess.features.permissions.models import Grant
from teamaccess.features.permissions.principals import Principal
from teamaccess.features.teams.models import TeamMember, TeamMemberStatus


def entry(member, role=GroupMemberRole.MEMBER):
    return GroupMemberEntry(member.id, role)


class TestGroupCrud:

    @pytest.mark.asyncio
    async def test_create_and_duplicate_name(self, db_session, team, other_team):
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "  Reviewers ")

        assert group.name == "Reviewers"
        with pytest.raises(ConflictError):
            await groups.create_group(team.id, "Reviewers")
        # names are unique per team only
        await groups.create_group(other_team.id, "Reviewers")

    @pytest.mark.asyncio
    async def test_empty_name(self, db_session, team):
        with pytest.raises(ValidationError):
            await GroupService(db_session).create_group(team.id, "")

    @pytest.mark.asyncio
    async def test_rename_conflict(self, db_session, team):
        groups = GroupService(db_session)
        await groups.create_group(team.id, "Reviewers")
        writers = await groups.create_group(team.id, "Writers")

        with pytest.raises(ConflictError):
            await groups.update_group(team.id, writers.id, name="Reviewers")

        renamed = await groups.update_group(team.id, writers.id, name="Authors", avatar="/icon/authors.svg")
        assert renamed.name == "Authors"
        assert renamed.avatar == "/icon/authors.svg"

    @pytest.mark.asyncio
    async def test_group_of_other_team_not_found(self, db_session, team, other_team):
        foreign = await GroupService(db_session).create_group(other_team.id, "Foreign")
        with pytest.raises(NotFoundError):
            await GroupService(db_session).get_group(team.id, foreign.id)

    @pytest.mark.asyncio
    async def test_list_groups_with_counts(self, db_session, team, add_member):
        first = await add_member(team.id)
        second = await add_member(team.id)
        groups = GroupService(db_session)
        reviewers = await groups.create_group(team.id, "Reviewers")
        await groups.create_group(team.id, "Writers")
        await groups.update_group(
            team.id, reviewers.id, members=[entry(first, GroupMemberRole.OWNER), entry(second)]
        )

        summaries = await groups.list_groups(team.id)

        assert [summary.group.name for summary in summaries] == ["Reviewers", "Writers"]
        assert summaries[0].member_count == 2
        assert summaries[0].owner_member_id == first.id
        assert summaries[1].member_count == 0
        assert summaries[1].owner_member_id is None

    @pytest.mark.asyncio
    async def test_delete_group_removes_grants(self, db_session, team, add_member):
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")
        await groups.update_group(team.id, group.id, members=[entry(member, GroupMemberRole.OWNER)])
        await PermissionLedger(db_session).upsert_grant(
            ResourceType.APP, generate_ulid(), team.id, Principal.group(group.id), READ_PERMISSION
        )

        await groups.delete_group(team.id, group.id)

        count = await db_session.execute(select(func.count()).select_from(Grant))
        assert count.scalar_one() == 0
        assert await groups.list_members(group.id) == []
        with pytest.raises(NotFoundError):
            await groups.get_group(team.id, group.id)


class TestGroupMembers:
    """Replacing member lists under the single-owner rule"""

    @pytest.mark.asyncio
    async def test_replace_members(self, db_session, team, add_member):
        owner = await add_member(team.id)
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        await groups.update_group(team.id, group.id, members=[entry(owner, GroupMemberRole.OWNER), entry(member)])
        await groups.update_group(team.id, group.id, members=[entry(member, GroupMemberRole.OWNER)])

        members = await groups.list_members(group.id)
        assert [(m.member_id, m.role) for m in members] == [(member.id, GroupMemberRole.OWNER)]

    @pytest.mark.asyncio
    async def test_two_owners_conflict(self, db_session, team, add_member):
        first = await add_member(team.id)
        second = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        with pytest.raises(ConflictError):
            await groups.update_group(
                team.id, group.id, members=[entry(first, GroupMemberRole.OWNER), entry(second, GroupMemberRole.OWNER)]
            )

    @pytest.mark.asyncio
    async def test_admin_promoted_when_no_owner(self, db_session, team, add_member):
        member = await add_member(team.id)
        admin = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        await groups.update_group(team.id, group.id, members=[entry(member), entry(admin, GroupMemberRole.ADMIN)])

        roles = {m.member_id: m.role for m in await groups.list_members(group.id)}
        assert roles == {member.id: GroupMemberRole.MEMBER, admin.id: GroupMemberRole.OWNER}

    @pytest.mark.asyncio
    async def test_no_owner_and_no_admin(self, db_session, team, add_member):
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        with pytest.raises(ConflictError):
            await groups.update_group(team.id, group.id, members=[entry(member)])

    @pytest.mark.asyncio
    async def test_empty_member_list_clears_group(self, db_session, team, add_member):
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")
        await groups.update_group(team.id, group.id, members=[entry(member, GroupMemberRole.OWNER)])

        await groups.update_group(team.id, group.id, members=[])

        assert await groups.list_members(group.id) == []

    @pytest.mark.asyncio
    async def test_duplicate_entries(self, db_session, team, add_member):
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        with pytest.raises(ValidationError):
            await groups.update_group(
                team.id, group.id, members=[entry(member, GroupMemberRole.OWNER), entry(member)]
            )

    @pytest.mark.asyncio
    async def test_inactive_or_foreign_members_rejected(self, db_session, team, other_team, add_member):
        member = await add_member(team.id)
        inactive = await add_member(team.id)
        outsider = await add_member(other_team.id)
        await db_session.execute(
            update(TeamMember).where(TeamMember.id == inactive.id).values(status=TeamMemberStatus.FORBIDDEN)
        )
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        with pytest.raises(ValidationError):
            await groups.update_group(
                team.id, group.id, members=[entry(member, GroupMemberRole.OWNER), entry(inactive)]
            )
        with pytest.raises(ValidationError):
            await groups.update_group(
                team.id, group.id, members=[entry(member, GroupMemberRole.OWNER), entry(outsider)]
            )
        assert await groups.list_members(group.id) == []

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, db_session, team, add_member):
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")

        with pytest.raises(ValidationError):
            await groups.update_group(team.id, group.id, members=[GroupMemberEntry(member.id, "superuser")])
        assert await groups.list_members(group.id) == []


class TestMemberDeparture:
    """Dropping a member from every group"""

    @pytest.mark.asyncio
    async def test_owner_departure_promotes_admin(self, db_session, team, add_member):
        owner = await add_member(team.id)
        admin = await add_member(team.id)
        member = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")
        await groups.update_group(
            team.id,
            group.id,
            members=[entry(owner, GroupMemberRole.OWNER), entry(member), entry(admin, GroupMemberRole.ADMIN)],
        )

        removed = await groups.delete_memberships_for_member(owner.id)

        assert removed == 1
        roles = {m.member_id: m.role for m in await groups.list_members(group.id)}
        assert roles == {admin.id: GroupMemberRole.OWNER, member.id: GroupMemberRole.MEMBER}

    @pytest.mark.asyncio
    async def test_last_member_leaves_empty_group(self, db_session, team, add_member):
        owner = await add_member(team.id)
        groups = GroupService(db_session)
        group = await groups.create_group(team.id, "Reviewers")
        await groups.update_group(team.id, group.id, members=[entry(owner, GroupMemberRole.OWNER)])

        assert await groups.delete_memberships_for_member(owner.id) == 1
        assert await groups.delete_memberships_for_member(owner.id) == 0
        assert await groups.list_members(group.id) == []
