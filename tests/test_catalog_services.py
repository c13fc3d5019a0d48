"""
Tests for the credential store, grant catalog, owners and audit trail services.
"""
from datetime import timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from security_api.core.clock import utcnow
from security_api.core.exceptions import Conflict, NotFound
from security_api.core.security import get_password_hash, verify_password
from security_api.models.owner import OwnerStatus
from security_api.models.user import UserStatus
from security_api.services.action_service import ActionService
from security_api.services.audit_service import AuditService
from security_api.services.membership_service import MembershipService
from security_api.services.owner_service import OwnerService
from security_api.services.role_service import Capabilities, RoleService
from security_api.services.user_service import UserService


async def _create_user(db, username="alice", password="alice-password"):
    return await UserService(db).create_user(
        username=username,
        password=password,
        display_name=f"{username.title()} Example",
        email=f"{username}@example.com",
    )


class TestPasswordHashing:

    def test_hash_verifies(self):
        hashed = get_password_hash("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_malformed_hash_does_not_raise(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestUserService:

    @pytest.mark.asyncio
    async def test_create_and_verify(self, db_session):
        user = await _create_user(db_session)
        service = UserService(db_session)

        assert user.status is UserStatus.ACTIVE
        assert user.created_by == "alice"
        assert (await service.verify_credentials("alice", "alice-password")).id == user.id

    @pytest.mark.asyncio
    async def test_failed_credentials_are_indistinguishable(self, db_session):
        await _create_user(db_session)
        service = UserService(db_session)

        assert await service.verify_credentials("alice", "wrong-password") is None
        assert await service.verify_credentials("nobody", "alice-password") is None

    @pytest.mark.asyncio
    async def test_duplicate_username(self, db_session):
        await _create_user(db_session)
        with pytest.raises(Conflict):
            await _create_user(db_session)

    @pytest.mark.asyncio
    async def test_update_rejects_taken_username(self, db_session):
        await _create_user(db_session, "alice")
        bob = await _create_user(db_session, "bobby")

        with pytest.raises(Conflict):
            await UserService(db_session).update_user(bob.id, {"username": "alice"}, updated_by="admin")

    @pytest.mark.asyncio
    async def test_update_keeps_missing_fields(self, db_session):
        user = await _create_user(db_session)
        updated = await UserService(db_session).update_user(
            user.id, {"display_name": "Alice Renamed", "email": None}, updated_by="admin"
        )

        assert updated.display_name == "Alice Renamed"
        assert updated.email == "alice@example.com"
        assert updated.updated_by == "admin"

    @pytest.mark.asyncio
    async def test_deactivate_blocks_user(self, db_session):
        user = await _create_user(db_session)
        blocked = await UserService(db_session).deactivate_user(user.id, updated_by="admin")

        assert blocked.status is UserStatus.BLOCKED
        assert blocked.is_active is False

    @pytest.mark.asyncio
    async def test_set_password(self, db_session):
        user = await _create_user(db_session)
        service = UserService(db_session)
        await service.set_password(user.id, "new-password", updated_by="alice")

        assert await service.verify_credentials("alice", "alice-password") is None
        assert (await service.verify_credentials("alice", "new-password")).id == user.id

        with pytest.raises(NotFound):
            await service.set_password(999, "new-password")

    @pytest.mark.asyncio
    async def test_touch_last_access(self, db_session):
        user = await _create_user(db_session)
        assert user.last_access_at is None

        await UserService(db_session).touch_last_access(user.id)
        await db_session.refresh(user)

        assert user.last_access_at is not None

    @pytest.mark.asyncio
    async def test_touch_last_access_updates_loaded_user(self, db_session):
        user = await _create_user(db_session)

        await UserService(db_session).touch_last_access(user.id)

        assert user.last_access_at is not None

    @pytest.mark.asyncio
    async def test_list_roles_follows_active_memberships(self, db_session):
        user = await _create_user(db_session)
        owner = await OwnerService(db_session).create_owner(
            {"tax_id": "T-1", "legal_id": "L-1", "name": "Acme"}, created_by="tests"
        )
        role = await RoleService(db_session).create_role("Billing", created_by="tests")
        memberships = MembershipService(db_session)
        membership = await memberships.create(user.id, owner.id, "trial", "tests", role_ids=[role.id])

        service = UserService(db_session)
        assert await service.list_roles(user.id) == {"Billing"}

        await memberships.decommission(membership.id, updated_by="tests")
        assert await service.list_roles(user.id) == set()

    @pytest.mark.asyncio
    async def test_list_roles_without_role_membership_table(self, db_session):
        user = await _create_user(db_session)
        await db_session.execute(text("DROP TABLE role_memberships"))

        assert await UserService(db_session).list_roles(user.id) == set()

    @pytest.mark.asyncio
    async def test_list_users_filters(self, db_session):
        await _create_user(db_session, "alice")
        bob = await _create_user(db_session, "bobby")
        service = UserService(db_session)
        await service.deactivate_user(bob.id, updated_by="admin")

        users, total = await service.list_users(search="ali")
        assert total == 1 and users[0].username == "alice"

        users, total = await service.list_users(status=UserStatus.BLOCKED)
        assert [u.username for u in users] == ["bobby"]

        users, total = await service.list_users(search="_")
        assert total == 0

    def test_display_format_omits_password(self):
        from security_api.models.user import User

        user = User(id=1, username="alice", password_hash="hash", display_name="Alice", email="a@example.com")
        shown = UserService(None).format_user_for_display(user)
        assert "password_hash" not in shown
        assert shown["username"] == "alice"


class TestRoleService:

    @pytest.mark.asyncio
    async def test_duplicate_role_name(self, db_session):
        roles = RoleService(db_session)
        await roles.create_role("Billing", created_by="tests")
        with pytest.raises(Conflict):
            await roles.create_role("Billing", created_by="tests")

    @pytest.mark.asyncio
    async def test_deleted_role_is_hidden(self, db_session):
        roles = RoleService(db_session)
        role = await roles.create_role("Billing", created_by="tests")

        assert await roles.delete_role(role.id, deleted_by="tests") is True
        assert await roles.get_role_by_id(role.id) is None
        assert role.id not in [r.id for r in await roles.get_all_roles()]
        assert await roles.delete_role(role.id, deleted_by="tests") is False

    @pytest.mark.asyncio
    async def test_seed_system_roles_is_repeatable(self, db_session):
        roles = RoleService(db_session)
        assert [r.name for r in await roles.seed_system_roles()] == ["admin"]
        assert await roles.seed_system_roles() == []

    @pytest.mark.asyncio
    async def test_grant_pair_is_unique(self, db_session):
        roles = RoleService(db_session)
        role = await roles.create_role("Billing", created_by="tests")
        action = await ActionService(db_session).create_action("invoice.create", "INV", created_by="tests")

        await roles.add_role_grant(role.id, action.id, Capabilities(can_insert=True), created_by="tests")
        with pytest.raises(Conflict):
            await roles.add_role_grant(role.id, action.id, Capabilities(can_select=True), created_by="tests")

    @pytest.mark.asyncio
    async def test_removed_grant_is_revived(self, db_session):
        roles = RoleService(db_session)
        role = await roles.create_role("Billing", created_by="tests")
        action = await ActionService(db_session).create_action("invoice.create", "INV", created_by="tests")

        grant = await roles.add_role_grant(role.id, action.id, Capabilities(can_insert=True), created_by="tests")
        assert await roles.remove_role_grant(role.id, grant.id, removed_by="tests") is True
        assert await roles.get_role_grants(role.id) == []

        revived = await roles.add_role_grant(role.id, action.id, Capabilities(can_delete=True), created_by="tests")
        assert revived.id == grant.id
        assert Capabilities.of(revived) == Capabilities(can_delete=True)

    @pytest.mark.asyncio
    async def test_grant_requires_existing_action(self, db_session):
        roles = RoleService(db_session)
        role = await roles.create_role("Billing", created_by="tests")
        with pytest.raises(NotFound):
            await roles.add_role_grant(role.id, 404, Capabilities(), created_by="tests")

    @pytest.mark.asyncio
    async def test_update_grant_flags(self, db_session):
        roles = RoleService(db_session)
        role = await roles.create_role("Billing", created_by="tests")
        action = await ActionService(db_session).create_action("invoice.create", "INV", created_by="tests")
        grant = await roles.add_role_grant(role.id, action.id, Capabilities(can_select=True), created_by="tests")

        updated = await roles.update_role_grant(role.id, grant.id, {"can_update": True}, updated_by="tests")

        assert Capabilities.of(updated) == Capabilities(can_select=True, can_update=True)

    def test_capability_union(self):
        merged = Capabilities(can_select=True).union(Capabilities(can_delete=True))
        assert merged.as_dict() == {
            "can_select": True,
            "can_insert": False,
            "can_update": False,
            "can_delete": True,
        }
        assert merged.allows("delete") and not merged.allows("insert")


class TestActionService:

    @pytest.mark.asyncio
    async def test_actions_by_type(self, db_session):
        actions = ActionService(db_session)
        await actions.create_action("invoice.view", "INV", created_by="tests")
        await actions.create_action("invoice.create", "INV", created_by="tests")
        await actions.create_action("report.run", "RPT", created_by="tests")

        assert [a.name for a in await actions.get_actions_by_type("INV")] == ["invoice.create", "invoice.view"]

    @pytest.mark.asyncio
    async def test_membership_link_defaults_to_read_only(self, db_session):
        user = await _create_user(db_session)
        owner = await OwnerService(db_session).create_owner(
            {"tax_id": "T-1", "legal_id": "L-1", "name": "Acme"}, created_by="tests"
        )
        membership = await MembershipService(db_session).create(user.id, owner.id, "trial", "tests")
        actions = ActionService(db_session)
        action = await actions.create_action("invoice.view", "INV", created_by="tests")

        link = await actions.add_action_to_membership(
            membership.id, action.id, Capabilities(can_select=True), created_by="tests"
        )
        assert Capabilities.of(link) == Capabilities(can_select=True)

        with pytest.raises(Conflict):
            await actions.add_action_to_membership(membership.id, action.id, Capabilities(), created_by="tests")

        assert await actions.remove_action_from_membership(membership.id, action.id) is True
        assert await actions.remove_action_from_membership(membership.id, action.id) is False


class TestOwnerService:

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive_and_skips_inactive(self, db_session):
        owners = OwnerService(db_session)
        acme = await owners.create_owner({"tax_id": "1", "legal_id": "1", "name": "Acme Corp"}, created_by="t")
        await owners.create_owner({"tax_id": "2", "legal_id": "2", "name": "Acme Labs"}, created_by="t")
        await owners.create_owner({"tax_id": "3", "legal_id": "3", "name": "Globex"}, created_by="t")

        assert [o.name for o in await owners.search_owners("acme")] == ["Acme Corp", "Acme Labs"]

        assert await owners.deactivate_owner(acme.id, updated_by="t") is True
        assert acme.status is OwnerStatus.INACTIVE
        assert [o.name for o in await owners.search_owners("ACME")] == ["Acme Labs"]
        assert await owners.deactivate_owner(acme.id, updated_by="t") is False

        assert len(await owners.get_all_owners()) == 2
        assert len(await owners.get_all_owners(include_inactive=True)) == 3

    @pytest.mark.asyncio
    async def test_search_matches_wildcards_literally(self, db_session):
        owners = OwnerService(db_session)
        await owners.create_owner({"tax_id": "1", "legal_id": "1", "name": "a_b Holdings"}, created_by="t")
        await owners.create_owner({"tax_id": "2", "legal_id": "2", "name": "axb Holdings"}, created_by="t")
        await owners.create_owner({"tax_id": "3", "legal_id": "3", "name": "100% Cotton"}, created_by="t")

        assert [o.name for o in await owners.search_owners("a_b")] == ["a_b Holdings"]
        assert [o.name for o in await owners.search_owners("0%")] == ["100% Cotton"]


class TestAuditService:

    @pytest.mark.asyncio
    async def test_record_serializes_states(self, db_session):
        audit = AuditService(db_session)
        entry = await audit.record(
            user_id=1,
            action_name="role.updated",
            table_name="roles",
            record_id=5,
            before={"name": "Billing"},
            after={"name": "Invoicing"},
            ip_address="10.0.0.1",
        )

        assert entry.id is not None
        assert entry.record_id == "5"
        assert entry.before_json == '{"name": "Billing"}'
        assert entry.after_json == '{"name": "Invoicing"}'

    @pytest.mark.asyncio
    async def test_queries(self, db_session):
        audit = AuditService(db_session)
        first = await audit.record(1, "role.created", "roles", record_id=5, after={"name": "Billing"})
        second = await audit.record(2, "owner.created", "owners", record_id=9, after={"name": "Acme"})
        third = await audit.record(1, "role.updated", "roles", record_id=5, after={"name": "Invoicing"})

        assert [e.id for e in await audit.get_by_user(1)] == [third.id, first.id]
        assert [e.id for e in await audit.get_by_table("owners")] == [second.id]
        assert [e.id for e in await audit.get_by_action("role.created")] == [first.id]
        assert [e.id for e in await audit.get_by_record("roles", 5)] == [third.id, first.id]
        assert [e.id for e in await audit.search("INVOICING")] == [third.id]
        assert (await audit.get_by_id(second.id)).table_name == "owners"
        assert len(await audit.get_by_user(1, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_date_range(self, db_session):
        audit = AuditService(db_session)
        entry = await audit.record(1, "role.created", "roles")
        now = utcnow()

        hits = await audit.get_by_date_range(now - timedelta(minutes=5), now + timedelta(minutes=5))
        assert [e.id for e in hits] == [entry.id]
        assert await audit.get_by_date_range(now + timedelta(hours=1), now + timedelta(hours=2)) == []

    @pytest.mark.asyncio
    async def test_search_matches_wildcards_literally(self, db_session):
        audit = AuditService(db_session)
        literal = await audit.record(1, "a_b.created", "roles")
        await audit.record(1, "axb.created", "roles")

        assert [e.id for e in await audit.search("a_b")] == [literal.id]

    @pytest.mark.asyncio
    async def test_failed_write_aborts_the_surrounding_transaction(self, database):
        with pytest.raises(IntegrityError):
            async with database.session() as db:
                await RoleService(db).create_role("Billing", created_by="tests")
                await AuditService(db).record(user_id=None, action_name=None, table_name="roles")

        async with database.session() as db:
            assert await RoleService(db).get_role_by_name("Billing") is None
