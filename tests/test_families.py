import pytest

from models.dynamodb import utc_now
from models.family import (Currency, FamilyCreate, FamilyMember, FamilyRole,
                           FamilyUpdate, MemberStatus)
from models.policy import WishlistPolicy
from services.families import FamilyService
from services.invite_codes import is_valid_invite_code_format
from utils.errors import (AlreadyMember, CannotDeleteAdmin, CannotRemoveAdmin,
                          FamilyFull, FamilyNotEmpty, InsufficientRole,
                          InvalidInviteCode, LastAdminCannotBeDemoted,
                          MembershipInactive, NotAMember, NotFound,
                          SelfActionForbidden, ValidationFailed)


class TestCreateAndRead:
    def test_creator_is_sole_admin_with_default_categories(
        self, family_service, table, alice
    ):
        details = family_service.create_family(
            alice, FamilyCreate(name="Smiths", description="Our family")
        )

        assert details.membership_role == FamilyRole.ADMIN
        assert details.membership_status == MemberStatus.ACTIVE
        assert is_valid_invite_code_format(details.invite_code)
        assert len(details.categories) == 8
        assert all(c.is_default for c in details.categories)

        members = table.list_family_members(details.id)
        assert [(m.user_id, m.role) for m in members] == [(alice, FamilyRole.ADMIN)]
        assert len(table.list_categories(details.id)) == 8
        assert table.get_family_by_invite_code(details.invite_code).family_id == details.id

    def test_get_family_with_members_and_categories(self, family_service, family, bob):
        details = family_service.get_family(
            family.id, bob, include_members=True, include_categories=True
        )

        assert details.membership_role == FamilyRole.MEMBER
        assert [m.name for m in details.members] == ["Alice", "Bob", "Carol"]
        assert details.members[0].role == FamilyRole.ADMIN
        assert [c.name for c in details.categories][0] == "Books"

    def test_get_family_leaves_optional_parts_unloaded(self, family_service, family, bob):
        details = family_service.get_family(family.id, bob)
        assert details.members is None
        assert details.categories is None

    def test_get_family_requires_membership(self, family_service, family, make_user):
        with pytest.raises(NotAMember):
            family_service.get_family(family.id, make_user("Dave"))

    def test_user_families_oldest_membership_first(
        self, family_service, family, alice, bob
    ):
        family_service.create_family(alice, FamilyCreate(name="Work"))

        names = [f.name for f in family_service.get_user_families(alice)]
        assert names == ["Smiths", "Work"]
        assert [f.name for f in family_service.get_user_families(bob)] == ["Smiths"]

    def test_stats(self, family_service, family):
        stats = family_service.get_family_stats(family.id)
        assert (stats.total_members, stats.admin_count, stats.member_count) == (3, 1, 2)


class TestUpdateAndDelete:
    def test_admin_updates_family(self, family_service, family, alice):
        details = family_service.update_family(
            family.id, alice, FamilyUpdate(name="The Smiths", currency="EUR")
        )
        assert details.name == "The Smiths"
        assert details.currency == Currency.EUR
        assert details.description is None

    def test_member_cannot_update(self, family_service, family, bob):
        with pytest.raises(InsufficientRole):
            family_service.update_family(family.id, bob, FamilyUpdate(name="Mine"))

    def test_name_cannot_be_cleared(self, family_service, family, alice):
        with pytest.raises(ValidationFailed):
            family_service.update_family(family.id, alice, FamilyUpdate(name=None))

    def test_family_with_other_members_cannot_be_deleted(
        self, family_service, family, alice
    ):
        with pytest.raises(FamilyNotEmpty):
            family_service.delete_family(family.id, alice)

    def test_sole_admin_deletes_family_and_everything_in_it(
        self, family_service, table, family, alice, bob, carol
    ):
        family_service.leave_family(family.id, bob)
        family_service.leave_family(family.id, carol)

        family_service.delete_family(family.id, alice)

        assert table.get_family(family.id) is None
        assert table.list_family_members(family.id) == []
        assert table.list_categories(family.id) == []
        assert table.get_family_by_invite_code(family.invite_code) is None
        assert table.list_user_memberships(bob) == []

    def test_member_cannot_delete_family(self, family_service, family, bob):
        with pytest.raises(InsufficientRole):
            family_service.delete_family(family.id, bob)


class TestInvites:
    def test_invite_info_for_admin(self, family_service, family, alice):
        info = family_service.get_invite_info(family.id, alice)

        assert info.invite_code == family.invite_code
        assert info.invite_link == f"http://localhost:3000/invite/{family.invite_code}"
        assert info.member_count == 3
        assert info.is_at_member_limit is False

    def test_invite_info_is_admin_only(self, family_service, family, bob):
        with pytest.raises(InsufficientRole):
            family_service.get_invite_info(family.id, bob)

    def test_preview_is_public_and_case_insensitive(self, family_service, family):
        preview = family_service.preview_invite(f"  {family.invite_code.lower()} ")
        assert preview.name == "Smiths"
        assert preview.member_count == 3

    @pytest.mark.parametrize("code", ["", "SHORT", "00000000", "ABCDEFGH"])
    def test_unknown_codes_are_invalid(self, family_service, family, code):
        with pytest.raises(InvalidInviteCode):
            family_service.preview_invite(code)

    def test_regenerate_invalidates_old_code(
        self, family_service, family, alice, bob, make_user
    ):
        info = family_service.regenerate_invite_code(family.id, alice)

        assert info.invite_code != family.invite_code
        with pytest.raises(InvalidInviteCode):
            family_service.join_family(make_user("Dave"), family.invite_code)
        # Existing memberships are untouched
        assert family_service.get_family(family.id, bob).name == "Smiths"


class TestJoinAndLeave:
    def test_join_twice_is_rejected(self, family_service, family, bob):
        with pytest.raises(AlreadyMember):
            family_service.join_family(bob, family.invite_code)

    def test_cap_admits_twentieth_member_and_rejects_the_twenty_first(
        self, family_service, alice, make_user
    ):
        details = family_service.create_family(alice, FamilyCreate(name="Big"))
        for n in range(19):
            family_service.join_family(make_user(f"Member{n}"), details.invite_code)

        assert family_service.get_family_stats(details.id).total_members == 20
        with pytest.raises(FamilyFull):
            family_service.join_family(make_user("Extra"), details.invite_code)
        assert family_service.get_invite_info(details.id, alice).is_at_member_limit

    def test_leave_then_rejoin_reactivates_the_same_row(
        self, family_service, table, family, bob
    ):
        joined_at = table.get_member(family.id, bob).joined_at
        family_service.leave_family(family.id, bob)

        with pytest.raises(MembershipInactive):
            family_service.get_family(family.id, bob)

        result = family_service.join_family(bob, family.invite_code)
        assert result.rejoined is True
        member = table.get_member(family.id, bob)
        assert member.status == MemberStatus.ACTIVE
        assert member.joined_at == joined_at
        assert len(table.list_user_memberships(bob)) == 1

    def test_reactivation_respects_the_cap(self, table, alice, bob, carol):
        families = FamilyService(table, WishlistPolicy(max_family_members=2))
        details = families.create_family(alice, FamilyCreate(name="Pair"))
        families.join_family(bob, details.invite_code)
        families.leave_family(details.id, bob)
        families.join_family(carol, details.invite_code)

        with pytest.raises(FamilyFull):
            families.join_family(bob, details.invite_code)

    def test_last_admin_cannot_leave_while_members_remain(
        self, family_service, family, alice
    ):
        with pytest.raises(LastAdminCannotBeDemoted):
            family_service.leave_family(family.id, alice)

    def test_admin_can_leave_when_another_admin_remains(
        self, family_service, family, alice, bob
    ):
        family_service.promote_member(family.id, alice, bob)
        family_service.leave_family(family.id, alice)
        assert family_service.get_family_stats(family.id).admin_count == 1

    def test_leave_and_join_moves_the_user(
        self, family_service, table, family, bob, make_user
    ):
        dave = make_user("Dave")
        other = family_service.create_family(dave, FamilyCreate(name="Joneses"))

        result = family_service.leave_and_join(bob, other.invite_code)

        assert result.family.id == other.id
        assert result.left_families == [{"id": family.id, "name": "Smiths"}]
        assert table.get_member(family.id, bob) is None
        assert [m.family_id for m in table.list_user_memberships(bob)] == [other.id]

    def test_leave_and_join_protects_last_admin(
        self, family_service, table, family, alice, make_user
    ):
        other = family_service.create_family(make_user("Dave"), FamilyCreate(name="Joneses"))

        with pytest.raises(LastAdminCannotBeDemoted):
            family_service.leave_and_join(alice, other.invite_code)
        assert table.get_member(other.id, alice) is None

    def test_leave_and_join_without_single_family_mode_keeps_memberships(
        self, table, family, bob, make_user
    ):
        families = FamilyService(table, WishlistPolicy(single_family_mode=False))
        other = families.create_family(make_user("Dave"), FamilyCreate(name="Joneses"))

        families.leave_and_join(bob, other.invite_code)

        family_ids = {m.family_id for m in table.list_user_memberships(bob)}
        assert family_ids == {family.id, other.id}


class TestMemberManagement:
    def test_promote_and_demote(self, family_service, family, alice, bob):
        promoted = family_service.promote_member(family.id, alice, bob)
        assert promoted.role == FamilyRole.ADMIN

        demoted = family_service.demote_member(family.id, bob, alice)
        assert demoted.role == FamilyRole.MEMBER
        assert family_service.get_family_stats(family.id).admin_count == 1

    def test_self_actions_are_forbidden_before_any_other_check(
        self, family_service, family, alice, bob
    ):
        for action in (
            family_service.promote_member,
            family_service.demote_member,
            family_service.remove_member,
            family_service.delete_member_account,
        ):
            with pytest.raises(SelfActionForbidden):
                action(family.id, alice, alice)
        # Even a non-admin gets the self-action error
        with pytest.raises(SelfActionForbidden):
            family_service.demote_member(family.id, bob, bob)

    def test_promote_requires_admin(self, family_service, family, bob, carol):
        with pytest.raises(InsufficientRole):
            family_service.promote_member(family.id, bob, carol)

    def test_promote_existing_admin(self, family_service, family, alice, bob):
        family_service.promote_member(family.id, alice, bob)
        with pytest.raises(ValidationFailed):
            family_service.promote_member(family.id, alice, bob)

    def test_demote_non_admin(self, family_service, family, alice, bob):
        with pytest.raises(ValidationFailed):
            family_service.demote_member(family.id, alice, bob)

    def test_target_must_be_active_member(self, family_service, family, alice, make_user):
        with pytest.raises(NotFound):
            family_service.promote_member(family.id, alice, make_user("Dave"))

    def test_remove_member(self, family_service, table, family, alice, bob):
        family_service.remove_member(family.id, alice, bob)
        assert table.get_member(family.id, bob) is None

    def test_admins_cannot_be_removed_or_deleted(
        self, family_service, family, alice, bob
    ):
        family_service.promote_member(family.id, alice, bob)
        with pytest.raises(CannotRemoveAdmin):
            family_service.remove_member(family.id, alice, bob)
        with pytest.raises(CannotDeleteAdmin):
            family_service.delete_member_account(family.id, alice, bob)

    def test_delete_member_account(self, family_service, table, family, alice, carol):
        family_service.delete_member_account(family.id, alice, carol)

        assert table.get_user(carol) is None
        assert table.get_user_by_email("carol@example.com") is None
        assert table.get_member(family.id, carol) is None

    def test_list_members(self, family_service, family, carol):
        members = family_service.list_members(family.id, carol)
        assert [m.email for m in members] == [
            "alice@example.com",
            "bob@example.com",
            "carol@example.com",
        ]


def active_count(table, family_id):
    return table.get_family(family_id).active_member_count


class TestMemberCounter:
    def test_counter_follows_joins_leaves_and_removals(
        self, family_service, table, family, alice, bob, carol
    ):
        assert active_count(table, family.id) == 3

        family_service.leave_family(family.id, bob)
        assert active_count(table, family.id) == 2

        family_service.join_family(bob, family.invite_code)
        assert active_count(table, family.id) == 3

        family_service.remove_member(family.id, alice, carol)
        assert active_count(table, family.id) == 2
        assert family_service.get_invite_info(family.id, alice).member_count == 2
        assert family_service.preview_invite(family.invite_code).member_count == 2

    def test_leave_and_join_moves_one_place_between_families(
        self, family_service, table, family, bob, make_user
    ):
        other = family_service.create_family(make_user("Dave"), FamilyCreate(name="Joneses"))

        family_service.leave_and_join(bob, other.invite_code)

        assert active_count(table, family.id) == 2
        assert active_count(table, other.id) == 2

    def test_leave_and_join_into_full_family_changes_nothing(
        self, table, family, bob, make_user
    ):
        families = FamilyService(table, WishlistPolicy(max_family_members=1))
        other = families.create_family(make_user("Dave"), FamilyCreate(name="Joneses"))

        with pytest.raises(FamilyFull):
            families.leave_and_join(bob, other.invite_code)

        assert table.get_member(family.id, bob).is_active
        assert table.get_member(other.id, bob) is None
        assert active_count(table, family.id) == 3
        assert active_count(table, other.id) == 1

    def test_add_member_at_capacity_writes_nothing(self, table, family, make_user):
        dave = make_user("Dave")
        member = FamilyMember(family_id=family.id, user_id=dave, joined_at=utc_now())

        with pytest.raises(FamilyFull):
            table.add_member(member, capacity=3)

        assert table.get_member(family.id, dave) is None
        assert active_count(table, family.id) == 3

    def test_add_member_twice_is_rejected(self, table, family, bob):
        member = table.get_member(family.id, bob)

        with pytest.raises(AlreadyMember):
            table.add_member(member, capacity=20)
        assert active_count(table, family.id) == 3

    def test_deleting_an_account_releases_its_places(
        self, user_service, table, family, carol, make_user
    ):
        dave = make_user("Dave")
        second = FamilyService(table).create_family(dave, FamilyCreate(name="Joneses"))
        FamilyService(table).join_family(carol, second.invite_code)

        user_service.delete_user(carol)

        assert active_count(table, family.id) == 2
        assert active_count(table, second.id) == 1

    def test_update_keeps_counter(self, family_service, table, family, alice):
        family_service.update_family(family.id, alice, FamilyUpdate(name="The Smiths"))

        stored = table.get_family(family.id)
        assert stored.name == "The Smiths"
        assert stored.active_member_count == 3


class TestLastAdminGuards:
    def test_demote_rejected_when_caller_lost_admin_concurrently(
        self, family_service, table, family, alice, bob, monkeypatch
    ):
        family_service.promote_member(family.id, alice, bob)
        list_family_members = table.list_family_members

        def members_after_alice_was_demoted(family_id):
            members = list_family_members(family_id)
            for member in members:
                if member.user_id == alice:
                    member.role = FamilyRole.MEMBER
            return members

        monkeypatch.setattr(table, "list_family_members", members_after_alice_was_demoted)

        with pytest.raises(LastAdminCannotBeDemoted):
            family_service.demote_member(family.id, alice, bob)
        assert table.get_member(family.id, bob).role == FamilyRole.ADMIN

    def test_member_account_that_is_last_admin_elsewhere_is_kept(
        self, family_service, table, family, alice, carol, make_user
    ):
        dave = make_user("Dave")
        carols = family_service.create_family(carol, FamilyCreate(name="Carols"))
        family_service.join_family(dave, carols.invite_code)

        with pytest.raises(LastAdminCannotBeDemoted):
            family_service.delete_member_account(family.id, alice, carol)

        assert table.get_user(carol) is not None
        assert table.get_member(family.id, carol).is_active
        assert family_service.get_family_stats(carols.id).admin_count == 1

    def test_member_account_that_is_sole_member_elsewhere_is_deleted(
        self, family_service, table, family, alice, carol
    ):
        solo = family_service.create_family(carol, FamilyCreate(name="Solo"))

        family_service.delete_member_account(family.id, alice, carol)

        assert table.get_user(carol) is None
        assert table.get_member(solo.id, carol) is None
