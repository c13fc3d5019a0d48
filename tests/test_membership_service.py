"""
Tests for membership lifecycle and effective permissions.
"""
from datetime import timedelta

import pytest

from security_api.core.clock import utcnow
from security_api.core.exceptions import NotFound, ValidationError
from security_api.models.membership import (
    Membership,
    MembershipKind,
    MembershipStatus,
    RoleMembership,
)
from security_api.services.action_service import ActionService
from security_api.services.membership_service import MembershipService, is_active, parse_kind
from security_api.services.owner_service import OwnerService
from security_api.services.role_service import Capabilities, RoleService
from security_api.services.user_service import UserService


async def _user_and_owner(db, username="alice"):
    user = await UserService(db).create_user(
        username=username,
        password="alice-password",
        display_name="Alice Example",
        email=f"{username}@example.com",
    )
    owner = await OwnerService(db).create_owner(
        {"tax_id": "T-100", "legal_id": "L-100", "name": "Acme"},
        created_by="tests",
    )
    return user, owner


class TestActivityPredicate:
    """Activity is computed from status and valid_until at evaluation time."""

    def test_open_ended_membership_is_active(self):
        membership = Membership(status=MembershipStatus.ACTIVE, valid_until=None)
        assert is_active(membership) is True

    def test_active_one_second_before_expiry(self):
        now = utcnow()
        membership = Membership(status=MembershipStatus.ACTIVE, valid_until=now + timedelta(seconds=1))
        assert is_active(membership, now) is True

    def test_inactive_one_second_after_expiry(self):
        now = utcnow()
        membership = Membership(status=MembershipStatus.ACTIVE, valid_until=now - timedelta(seconds=1))
        assert is_active(membership, now) is False

    def test_decommissioned_is_never_active(self):
        membership = Membership(status=MembershipStatus.DECOMMISSIONED, valid_until=None)
        assert is_active(membership) is False

    def test_naive_valid_until_is_treated_as_utc(self):
        now = utcnow()
        naive = (now + timedelta(hours=1)).replace(tzinfo=None)
        membership = Membership(status=MembershipStatus.ACTIVE, valid_until=naive)
        assert is_active(membership, now) is True


class TestParseKind:
    def test_accepts_known_kinds_case_insensitively(self):
        assert parse_kind("Trial") is MembershipKind.TRIAL
        assert parse_kind(MembershipKind.CONTRACT) is MembershipKind.CONTRACT

    def test_rejects_unknown_kind(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_kind("lifetime")
        assert exc_info.value.details == {"field": "kind"}


class TestMembershipLifecycle:

    @pytest.mark.asyncio
    async def test_create_assigns_identifier_and_roles(self, db_session):
        user, owner = await _user_and_owner(db_session)
        role = await RoleService(db_session).create_role("Billing", created_by="tests")

        service = MembershipService(db_session)
        membership = await service.create(
            user_id=user.id,
            owner_id=owner.id,
            kind="contract",
            role_ids=[role.id, role.id],
            created_by="tests",
        )

        assert membership.id is not None
        assert membership.kind is MembershipKind.CONTRACT
        assert membership.status is MembershipStatus.ACTIVE
        assert [r.name for r in await service.get_roles(membership.id)] == ["Billing"]

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_kind(self, db_session):
        user, owner = await _user_and_owner(db_session)
        with pytest.raises(ValidationError):
            await MembershipService(db_session).create(
                user_id=user.id, owner_id=owner.id, kind="forever", created_by="tests"
            )

    @pytest.mark.asyncio
    async def test_create_requires_existing_user(self, db_session):
        _, owner = await _user_and_owner(db_session)
        with pytest.raises(NotFound):
            await MembershipService(db_session).create(
                user_id=9999, owner_id=owner.id, kind="trial", created_by="tests"
            )

    @pytest.mark.asyncio
    async def test_list_active_excludes_expired_and_decommissioned(self, db_session):
        user, owner = await _user_and_owner(db_session)
        service = MembershipService(db_session)
        now = utcnow()

        current = await service.create(user.id, owner.id, "trial", "tests", valid_until=now + timedelta(days=1))
        expired = await service.create(user.id, owner.id, "trial", "tests", valid_until=now - timedelta(days=1))
        retired = await service.create(user.id, owner.id, "permanent", "tests")
        await service.decommission(retired.id, updated_by="tests")

        active_ids = {m.id for m in await service.list_active(now)}
        assert current.id in active_ids
        assert expired.id not in active_ids
        assert retired.id not in active_ids

    @pytest.mark.asyncio
    async def test_decommission_is_idempotent(self, db_session):
        user, owner = await _user_and_owner(db_session)
        service = MembershipService(db_session)
        valid_until = utcnow() + timedelta(days=30)
        membership = await service.create(user.id, owner.id, "contract", "tests", valid_until=valid_until)

        assert await service.decommission(membership.id, updated_by="tests") is True
        assert await service.decommission(membership.id, updated_by="tests") is False

        reloaded = await service.get_by_id(membership.id)
        assert reloaded.status is MembershipStatus.DECOMMISSIONED
        assert reloaded.valid_until is not None

    @pytest.mark.asyncio
    async def test_decommission_missing_membership(self, db_session):
        with pytest.raises(NotFound):
            await MembershipService(db_session).decommission(12345, updated_by="tests")

    @pytest.mark.asyncio
    async def test_update_keeps_fields_that_are_not_sent(self, db_session):
        user, owner = await _user_and_owner(db_session)
        service = MembershipService(db_session)
        valid_until = utcnow() + timedelta(days=10)
        membership = await service.create(user.id, owner.id, "trial", "tests", valid_until=valid_until)

        updated = await service.update(
            membership.id, {"kind": "permanent", "valid_until": None}, updated_by="admin"
        )

        assert updated.kind is MembershipKind.PERMANENT
        assert updated.valid_until is not None
        assert updated.updated_by == "admin"

    @pytest.mark.asyncio
    async def test_update_missing_membership_returns_none(self, db_session):
        assert await MembershipService(db_session).update(4242, {"kind": "trial"}, updated_by="x") is None

    @pytest.mark.asyncio
    async def test_active_for_user_is_scoped_to_owner(self, db_session):
        user, owner = await _user_and_owner(db_session)
        other = await OwnerService(db_session).create_owner(
            {"tax_id": "T-200", "legal_id": "L-200", "name": "Globex"}, created_by="tests"
        )
        service = MembershipService(db_session)
        await service.create(user.id, owner.id, "trial", "tests")
        await service.create(user.id, other.id, "trial", "tests")

        scoped = await service.get_active_for_user(user.id, owner_id=other.id)
        assert [m.owner_id for m in scoped] == [other.id]
        assert len(await service.get_active_for_user(user.id)) == 2


class TestEffectivePermissions:

    @pytest.mark.asyncio
    async def test_direct_and_role_grants_are_merged_per_action(self, db_session):
        user, owner = await _user_and_owner(db_session)
        actions = ActionService(db_session)
        create = await actions.create_action("invoice.create", "INV", created_by="tests")
        view = await actions.create_action("invoice.view", "INV", created_by="tests")

        roles = RoleService(db_session)
        billing = await roles.create_role("Billing", created_by="tests")
        await roles.add_role_grant(billing.id, create.id, Capabilities(can_insert=True), created_by="tests")
        await roles.add_role_grant(billing.id, view.id, Capabilities(can_select=True), created_by="tests")

        service = MembershipService(db_session)
        membership = await service.create(user.id, owner.id, "contract", "tests", role_ids=[billing.id])
        await actions.add_action_to_membership(
            membership.id, create.id, Capabilities(can_select=True), created_by="tests"
        )

        permissions = await service.effective_permissions(membership.id)

        assert [p.action_name for p in permissions] == ["invoice.create", "invoice.view"]
        merged = permissions[0].capabilities
        assert merged.can_select and merged.can_insert
        assert not merged.can_update and not merged.can_delete

    @pytest.mark.asyncio
    async def test_deleted_role_contributes_nothing_but_link_survives(self, db_session):
        user, owner = await _user_and_owner(db_session)
        action = await ActionService(db_session).create_action("invoice.create", "INV", created_by="tests")
        roles = RoleService(db_session)
        billing = await roles.create_role("Billing", created_by="tests")
        await roles.add_role_grant(billing.id, action.id, Capabilities(can_insert=True), created_by="tests")

        service = MembershipService(db_session)
        membership = await service.create(user.id, owner.id, "trial", "tests", role_ids=[billing.id])
        assert len(await service.effective_permissions(membership.id)) == 1

        assert await roles.delete_role(billing.id, deleted_by="tests") is True

        assert await service.effective_permissions(membership.id) == []
        assert await service.get_roles(membership.id) == []
        assert await db_session.get(RoleMembership, (membership.id, billing.id)) is not None

    @pytest.mark.asyncio
    async def test_missing_membership(self, db_session):
        with pytest.raises(NotFound):
            await MembershipService(db_session).effective_permissions(777)
