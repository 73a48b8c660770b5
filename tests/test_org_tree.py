"""
Tests for the org hierarchy: node creation, ancestry and subtree queries,
memberships and node deletion.
"""
import pytest
from sqlalchemy import select, func

from teamaccess.core.errors import ConflictError, NotFoundError, ValidationError
from teamaccess.features.orgs.models import org_ancestors
from teamaccess.features.orgs.service import OrgTree, normalize_parent_id
from teamaccess.features.permissions.constants import ResourceType, READ_PERMISSION
from teamaccess.features.permissions.ledger import PermissionLedger
from teamaccess.features.permissions.models import Grant
from teamaccess.features.permissions.principals import Principal


class TestNodeCreation:
    """Creating nodes and the sibling-name rule"""

    @pytest.mark.asyncio
    async def test_create_top_level_and_child(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        backend = await tree.create_node(team.id, engineering.id, "Backend")

        assert engineering.parent_id is None
        assert engineering.depth == 0
        assert backend.parent_id == engineering.id
        assert backend.depth == 1

    @pytest.mark.asyncio
    async def test_empty_parent_is_top_level(self, db_session, team):
        tree = OrgTree(db_session)
        node = await tree.create_node(team.id, "", "Sales")

        assert node.parent_id is None
        assert normalize_parent_id("  ") is None
        assert normalize_parent_id("abc") == "abc"

    @pytest.mark.asyncio
    async def test_sibling_name_conflict(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        await tree.create_node(team.id, engineering.id, "Backend")

        with pytest.raises(ConflictError):
            await tree.create_node(team.id, None, "Engineering")
        with pytest.raises(ConflictError):
            await tree.create_node(team.id, engineering.id, "Backend")

    @pytest.mark.asyncio
    async def test_same_name_under_different_parents(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        sales = await tree.create_node(team.id, None, "Sales")

        first = await tree.create_node(team.id, engineering.id, "Platform")
        second = await tree.create_node(team.id, sales.id, "Platform")

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_same_top_level_name_in_other_team(self, db_session, team, other_team):
        tree = OrgTree(db_session)
        await tree.create_node(team.id, None, "Engineering")
        node = await tree.create_node(other_team.id, None, "Engineering")

        assert node.team_id == other_team.id

    @pytest.mark.asyncio
    async def test_unknown_parent(self, db_session, team):
        tree = OrgTree(db_session)
        with pytest.raises(NotFoundError):
            await tree.create_node(team.id, "01HZZZZZZZZZZZZZZZZZZZZZZZ", "Orphan")

    @pytest.mark.asyncio
    async def test_parent_from_other_team(self, db_session, team, other_team):
        tree = OrgTree(db_session)
        foreign = await tree.create_node(other_team.id, None, "Foreign")

        with pytest.raises(NotFoundError):
            await tree.create_node(team.id, foreign.id, "Child")

    @pytest.mark.asyncio
    async def test_name_validation(self, db_session, team):
        tree = OrgTree(db_session)
        with pytest.raises(ValidationError):
            await tree.create_node(team.id, None, "   ")
        with pytest.raises(ValidationError):
            await tree.create_node(team.id, None, "x" * 51)

    @pytest.mark.asyncio
    async def test_ancestor_index_rows(self, db_session, team):
        tree = OrgTree(db_session)
        a = await tree.create_node(team.id, None, "A")
        b = await tree.create_node(team.id, a.id, "B")
        c = await tree.create_node(team.id, b.id, "C")

        result = await db_session.execute(
            select(org_ancestors.c.ancestor_id, org_ancestors.c.depth)
            .where(org_ancestors.c.descendant_id == c.id)
            .order_by(org_ancestors.c.depth)
        )
        assert [tuple(row) for row in result.all()] == [(c.id, 0), (b.id, 1), (a.id, 2)]


class TestTreeQueries:
    """Children, descendants and ancestor chains"""

    @pytest.mark.asyncio
    async def test_list_children(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        sales = await tree.create_node(team.id, None, "Sales")
        backend = await tree.create_node(team.id, engineering.id, "Backend")
        await tree.create_node(team.id, backend.id, "Payments")

        top_level = await tree.list_children(team.id)
        assert {node.id for node in top_level} == {engineering.id, sales.id}

        children = await tree.list_children(team.id, engineering.id)
        assert [node.id for node in children] == [backend.id]

    @pytest.mark.asyncio
    async def test_list_children_search(self, db_session, team):
        tree = OrgTree(db_session)
        await tree.create_node(team.id, None, "Engineering")
        sales = await tree.create_node(team.id, None, "Sales")

        found = await tree.list_children(team.id, None, search_key="sal")
        assert [node.id for node in found] == [sales.id]

    @pytest.mark.asyncio
    async def test_list_descendants(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        backend = await tree.create_node(team.id, engineering.id, "Backend")
        frontend = await tree.create_node(team.id, engineering.id, "Frontend")
        payments = await tree.create_node(team.id, backend.id, "Payments")
        await tree.create_node(team.id, None, "Sales")

        descendants = await tree.list_descendants(team.id, engineering.id)

        assert {node.id for node in descendants} == {backend.id, frontend.id, payments.id}
        # shallowest first
        assert descendants[-1].id == payments.id
        assert await tree.list_descendants(team.id, payments.id) == []

    @pytest.mark.asyncio
    async def test_ancestor_chain(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        backend = await tree.create_node(team.id, engineering.id, "Backend")
        payments = await tree.create_node(team.id, backend.id, "Payments")

        chain = await tree.ancestor_chain(team.id, payments.id)

        assert [node.id for node in chain] == [payments.id, backend.id, engineering.id]

    @pytest.mark.asyncio
    async def test_ancestor_ids_union(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        backend = await tree.create_node(team.id, engineering.id, "Backend")
        sales = await tree.create_node(team.id, None, "Sales")

        assert await tree.ancestor_ids([backend.id, sales.id]) == {backend.id, engineering.id, sales.id}
        assert await tree.ancestor_ids([]) == set()

    @pytest.mark.asyncio
    async def test_summarize(self, db_session, team, add_member):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        backend = await tree.create_node(team.id, engineering.id, "Backend")
        await tree.create_node(team.id, backend.id, "Payments")
        member = await add_member(team.id)
        await tree.update_members(team.id, engineering.id, [member.id, team.owner.id])

        summary = (await tree.summarize([engineering.id]))[engineering.id]

        assert summary.member_count == 2
        assert summary.descendant_count == 2
        assert summary.total == 4


class TestMemberships:
    """Replacing and removing org members"""

    @pytest.mark.asyncio
    async def test_update_members_ignores_invalid(self, db_session, team, other_team, add_member):
        tree = OrgTree(db_session)
        node = await tree.create_node(team.id, None, "Engineering")
        member = await add_member(team.id)
        outsider = await add_member(other_team.id)

        applied, ignored = await tree.update_members(
            team.id, node.id, [member.id, outsider.id, "01HZZZZZZZZZZZZZZZZZZZZZZZ", member.id]
        )

        assert (applied, ignored) == (1, 2)
        assert await tree.list_member_ids(node.id) == [member.id]

    @pytest.mark.asyncio
    async def test_update_members_replaces_set(self, db_session, team, add_member):
        tree = OrgTree(db_session)
        node = await tree.create_node(team.id, None, "Engineering")
        first = await add_member(team.id)
        second = await add_member(team.id)

        await tree.update_members(team.id, node.id, [first.id])
        await tree.update_members(team.id, node.id, [second.id])

        assert await tree.list_member_ids(node.id) == [second.id]

    @pytest.mark.asyncio
    async def test_remove_member(self, db_session, team, add_member):
        tree = OrgTree(db_session)
        node = await tree.create_node(team.id, None, "Engineering")
        member = await add_member(team.id)
        await tree.update_members(team.id, node.id, [member.id])

        await tree.remove_member(team.id, node.id, member.id)

        assert await tree.list_member_ids(node.id) == []
        with pytest.raises(NotFoundError):
            await tree.remove_member(team.id, node.id, member.id)


class TestNodeDeletion:
    """Deleting nodes"""

    @pytest.mark.asyncio
    async def test_node_with_children_cannot_be_deleted(self, db_session, team):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        await tree.create_node(team.id, engineering.id, "Backend")

        with pytest.raises(ConflictError):
            await tree.delete_node(team.id, engineering.id)

    @pytest.mark.asyncio
    async def test_delete_leaf_removes_memberships_and_grants(self, db_session, team, add_member):
        tree = OrgTree(db_session)
        engineering = await tree.create_node(team.id, None, "Engineering")
        backend = await tree.create_node(team.id, engineering.id, "Backend")
        member = await add_member(team.id)
        await tree.update_members(team.id, backend.id, [member.id])
        await PermissionLedger(db_session).upsert_grant(
            ResourceType.APP, "01HAPPAPPAPPAPPAPPAPPAPPAP", team.id, Principal.org(backend.id), READ_PERMISSION
        )

        await tree.delete_node(team.id, backend.id)

        grants = await db_session.execute(select(func.count()).select_from(Grant))
        assert grants.scalar_one() == 0
        assert await tree.list_member_ids(backend.id) == []
        assert await tree.list_descendants(team.id, engineering.id) == []
        with pytest.raises(NotFoundError):
            await tree.get_node(team.id, backend.id)
