"""
Family lifecycle: creation, invites, joining and leaving, and member
management. Every operation passes through MembershipAuthorizer first.
"""

from typing import List, Optional

from models.dynamodb import utc_now
from models.family import (DEFAULT_CATEGORIES, Category, Family,
                           FamilyCreate, FamilyDetails, FamilyMember,
                           FamilyRole, FamilyStats, FamilyUpdate, InviteInfo,
                           InvitePreview, JoinResult, MemberStatus,
                           MemberView)
from models.policy import WishlistPolicy
from services.dynamodb import WishlistTable
from services.invite_codes import (generate_unique_invite_code,
                                   is_valid_invite_code_format,
                                   normalize_invite_code)
from services.membership import (MembershipAuthorizer, count_active_admins,
                                  ensure_admin_remains, ensure_not_self,
                                  ensure_sole_member, ensure_target_not_admin)
from utils.errors import (AlreadyMember, CannotDeleteAdmin,
                          CannotRemoveAdmin, FamilyNotEmpty,
                          InvalidInviteCode, LastAdminCannotBeDemoted,
                          NotFound, ValidationFailed)
from utils.logging import log_rejection, setup_logger

logger = setup_logger(__name__)


class FamilyService:
    """Family operations for authenticated users."""

    def __init__(
        self,
        table: WishlistTable,
        policy: Optional[WishlistPolicy] = None,
        authorizer: Optional[MembershipAuthorizer] = None,
    ):
        self.table = table
        self.policy = policy or WishlistPolicy()
        self.authorizer = authorizer or MembershipAuthorizer(table)

    # Creation and lookup

    def create_family(self, user_id: str, data: FamilyCreate) -> FamilyDetails:
        """
        Create a family with the creator as its sole ADMIN and the default
        categories, all in one transaction.
        """
        now = utc_now()
        family = Family(
            name=data.name,
            description=data.description,
            invite_code=generate_unique_invite_code(self.table.invite_code_exists),
            created_at=now,
            updated_at=now,
        )
        admin = FamilyMember(
            family_id=family.family_id,
            user_id=user_id,
            role=FamilyRole.ADMIN,
            status=MemberStatus.ACTIVE,
            joined_at=now,
        )
        categories = [
            Category(
                family_id=family.family_id,
                name=name,
                description=description,
                is_default=True,
                created_at=now,
                updated_at=now,
            )
            for name, description in DEFAULT_CATEGORIES
        ]

        self.table.create_family(family, admin, categories)

        logger.info(
            "Family created",
            extra={"family_id": family.family_id, "user_id": user_id},
        )
        return FamilyDetails.build(family, admin, categories=categories)

    def get_user_families(
        self, user_id: str, include_members: bool = False
    ) -> List[FamilyDetails]:
        """The user's ACTIVE families, oldest membership first."""
        memberships = [
            m for m in self.table.list_user_memberships(user_id) if m.is_active
        ]
        memberships.sort(key=lambda m: m.joined_at)

        results = []
        for member in memberships:
            family = self.table.get_family(member.family_id)
            if family is None:
                continue
            members = self.list_member_views(family.family_id) if include_members else None
            results.append(FamilyDetails.build(family, member, members=members))
        return results

    def get_family(
        self,
        family_id: str,
        user_id: str,
        include_members: bool = False,
        include_categories: bool = False,
    ) -> FamilyDetails:
        membership = self.authorizer.authorize_family_access(user_id, family_id)
        members = self.list_member_views(family_id) if include_members else None
        categories = None
        if include_categories:
            categories = sorted(
                self.table.list_categories(family_id), key=lambda c: c.name.lower()
            )
        return FamilyDetails.build(
            membership.family, membership.member, members=members, categories=categories
        )

    def update_family(
        self, family_id: str, user_id: str, data: FamilyUpdate
    ) -> FamilyDetails:
        membership = self.authorizer.authorize_family_access(
            user_id, family_id, FamilyRole.ADMIN
        )
        family = membership.family

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            if field in ("name", "currency") and value is None:
                raise ValidationFailed(f"{field} cannot be empty")
            setattr(family, field, value)
        family.updated_at = utc_now()

        self.table.update_family_details(family)
        logger.info(
            "Family updated",
            extra={"family_id": family_id, "user_id": user_id, "fields": sorted(changes)},
        )
        return FamilyDetails.build(family, membership.member)

    def get_family_stats(self, family_id: str) -> FamilyStats:
        active = [m for m in self.table.list_family_members(family_id) if m.is_active]
        admins = count_active_admins(active)
        return FamilyStats(
            total_members=len(active),
            admin_count=admins,
            member_count=len(active) - admins,
        )

    def list_member_views(self, family_id: str) -> List[MemberView]:
        """ACTIVE members with their profiles, admins first then by join date."""
        members = [m for m in self.table.list_family_members(family_id) if m.is_active]
        users = self.table.get_users(m.user_id for m in members)

        views = []
        for member in members:
            user = users.get(member.user_id)
            if user is None:
                continue
            views.append(
                MemberView(
                    user_id=member.user_id,
                    name=user.name,
                    email=user.email,
                    role=member.role,
                    status=member.status,
                    joined_at=member.joined_at,
                )
            )
        views.sort(key=lambda v: (v.role != FamilyRole.ADMIN, v.joined_at))
        return views

    def list_members(self, family_id: str, user_id: str) -> List[MemberView]:
        self.authorizer.authorize_family_access(user_id, family_id)
        return self.list_member_views(family_id)

    def delete_family(self, family_id: str, user_id: str) -> None:
        """Delete a family; only allowed for an ADMIN who is its last ACTIVE member."""
        membership = self.authorizer.authorize_family_access(
            user_id, family_id, FamilyRole.ADMIN
        )
        ensure_sole_member(
            self.table.list_family_members(family_id), user_id, FamilyNotEmpty
        )

        self.table.delete_family_cascade(membership.family)
        logger.info("Family deleted", extra={"family_id": family_id, "user_id": user_id})

    # Invites

    def _resolve_invite_code(self, code: str) -> Family:
        code = normalize_invite_code(code)
        family = None
        if is_valid_invite_code_format(code):
            family = self.table.get_family_by_invite_code(code)
        if family is None:
            error = InvalidInviteCode()
            log_rejection(logger, error)
            raise error
        return family

    def get_invite_info(self, family_id: str, user_id: str) -> InviteInfo:
        membership = self.authorizer.authorize_family_access(
            user_id, family_id, FamilyRole.ADMIN
        )
        return self._invite_info(membership.family)

    def _invite_info(self, family: Family) -> InviteInfo:
        member_count = family.active_member_count
        return InviteInfo(
            family_id=family.family_id,
            name=family.name,
            description=family.description,
            invite_code=family.invite_code,
            invite_link=f"{self.policy.invite_base_url.rstrip('/')}/invite/{family.invite_code}",
            member_count=member_count,
            is_at_member_limit=member_count >= self.policy.max_family_members,
        )

    def preview_invite(self, code: str) -> InvitePreview:
        """Public view of the family behind an invite code."""
        family = self._resolve_invite_code(code)
        return InvitePreview(
            family_id=family.family_id,
            name=family.name,
            description=family.description,
            member_count=family.active_member_count,
        )

    def regenerate_invite_code(self, family_id: str, user_id: str) -> InviteInfo:
        """Issue a new invite code; the old one stops working immediately."""
        membership = self.authorizer.authorize_family_access(
            user_id, family_id, FamilyRole.ADMIN
        )
        family = membership.family
        old_code = family.invite_code

        family.invite_code = generate_unique_invite_code(self.table.invite_code_exists)
        family.updated_at = utc_now()
        self.table.replace_invite_code(family, old_code)

        logger.info(
            "Invite code regenerated", extra={"family_id": family_id, "user_id": user_id}
        )
        return self._invite_info(family)

    # Joining and leaving

    def _ensure_can_leave(self, member: FamilyMember) -> None:
        """The last ADMIN cannot walk away from a family that still has members."""
        if not member.is_admin:
            return
        members = self.table.list_family_members(member.family_id)
        others = [m for m in members if m.is_active and m.user_id != member.user_id]
        if others:
            ensure_admin_remains(members, member.user_id)

    def _joining_membership(self, family_id: str, user_id: str):
        """Reuse an INACTIVE/PENDING row if there is one, else start a new MEMBER row."""
        existing = self.table.get_member(family_id, user_id)
        if existing is not None:
            if existing.is_active:
                raise AlreadyMember()
            existing.status = MemberStatus.ACTIVE
            return existing, True
        member = FamilyMember(
            family_id=family_id,
            user_id=user_id,
            role=FamilyRole.MEMBER,
            status=MemberStatus.ACTIVE,
            joined_at=utc_now(),
        )
        return member, False

    def join_family(self, user_id: str, invite_code: str) -> JoinResult:
        """
        Join the family behind an invite code.

        A previous INACTIVE or PENDING membership is reactivated rather than
        duplicated. The member cap applies to rejoining as well, and is
        checked in the same transaction that writes the membership.
        """
        family = self._resolve_invite_code(invite_code)
        member, rejoined = self._joining_membership(family.family_id, user_id)

        self.table.add_member(member, self.policy.max_family_members)
        logger.info(
            "User joined family",
            extra={"family_id": family.family_id, "user_id": user_id, "rejoined": rejoined},
        )
        return JoinResult(family=FamilyDetails.build(family, member), rejoined=rejoined)

    def leave_and_join(self, user_id: str, invite_code: str) -> JoinResult:
        """
        Move to the family behind an invite code.

        In single-family mode all other ACTIVE memberships are dropped in the
        same transaction that adds the new one; otherwise this is a plain join.
        """
        if not self.policy.single_family_mode:
            return self.join_family(user_id, invite_code)

        family = self._resolve_invite_code(invite_code)
        current = [
            m for m in self.table.list_user_memberships(user_id) if m.is_active
        ]
        if any(m.family_id == family.family_id for m in current):
            raise AlreadyMember()

        for member in current:
            self._ensure_can_leave(member)

        joining, rejoined = self._joining_membership(family.family_id, user_id)
        self.table.switch_membership(current, joining, self.policy.max_family_members)

        left_families = []
        for member in current:
            left = self.table.get_family(member.family_id)
            if left is not None:
                left_families.append({"id": left.family_id, "name": left.name})

        logger.info(
            "User moved to family",
            extra={
                "family_id": family.family_id,
                "user_id": user_id,
                "left_family_ids": [m.family_id for m in current],
            },
        )
        return JoinResult(
            family=FamilyDetails.build(family, joining),
            rejoined=rejoined,
            left_families=left_families,
        )

    def leave_family(self, family_id: str, user_id: str) -> None:
        """Leave a family, keeping the row INACTIVE so a later join reactivates it."""
        membership = self.authorizer.authorize_family_access(user_id, family_id)
        member = membership.member
        self._ensure_can_leave(member)

        member.status = MemberStatus.INACTIVE
        self.table.deactivate_member(member)
        logger.info("User left family", extra={"family_id": family_id, "user_id": user_id})

    # Member management

    def _member_view(self, member: FamilyMember) -> MemberView:
        user = self.table.get_user(member.user_id)
        if user is None:
            raise NotFound("User", member.user_id)
        return MemberView(
            user_id=member.user_id,
            name=user.name,
            email=user.email,
            role=member.role,
            status=member.status,
            joined_at=member.joined_at,
        )

    def promote_member(
        self, family_id: str, acting_user_id: str, target_user_id: str
    ) -> MemberView:
        ensure_not_self(acting_user_id, target_user_id, "promote")
        self.authorizer.authorize_family_access(acting_user_id, family_id, FamilyRole.ADMIN)
        target = self.authorizer.require_active_member(family_id, target_user_id)
        if target.is_admin:
            raise ValidationFailed("User is already an admin")

        target.role = FamilyRole.ADMIN
        self.table.set_member_role(target)
        logger.info(
            "Member promoted",
            extra={
                "family_id": family_id,
                "user_id": acting_user_id,
                "target_user_id": target_user_id,
            },
        )
        return self._member_view(target)

    def demote_member(
        self, family_id: str, acting_user_id: str, target_user_id: str
    ) -> MemberView:
        ensure_not_self(acting_user_id, target_user_id, "demote")
        self.authorizer.authorize_family_access(acting_user_id, family_id, FamilyRole.ADMIN)
        target = self.authorizer.require_active_member(family_id, target_user_id)
        if not target.is_admin:
            raise ValidationFailed("User is not an admin")

        # The caller is an ADMIN, so this only trips when a concurrent demotion
        # already took the caller's role.
        members = self.table.list_family_members(family_id)
        if count_active_admins(members) <= 1:
            raise LastAdminCannotBeDemoted()

        target.role = FamilyRole.MEMBER
        self.table.set_member_role(target)
        logger.info(
            "Member demoted",
            extra={
                "family_id": family_id,
                "user_id": acting_user_id,
                "target_user_id": target_user_id,
            },
        )
        return self._member_view(target)

    def remove_member(
        self, family_id: str, acting_user_id: str, target_user_id: str
    ) -> None:
        """Hard-delete another MEMBER's membership row."""
        ensure_not_self(acting_user_id, target_user_id, "remove")
        self.authorizer.authorize_family_access(acting_user_id, family_id, FamilyRole.ADMIN)
        target = self.authorizer.require_active_member(family_id, target_user_id)
        ensure_target_not_admin(target, CannotRemoveAdmin)

        self.table.delete_member(family_id, target_user_id)
        logger.info(
            "Member removed",
            extra={
                "family_id": family_id,
                "user_id": acting_user_id,
                "target_user_id": target_user_id,
            },
        )

    def delete_member_account(
        self, family_id: str, acting_user_id: str, target_user_id: str
    ) -> None:
        """Delete another MEMBER's whole account, not just the membership."""
        ensure_not_self(acting_user_id, target_user_id, "delete")
        self.authorizer.authorize_family_access(acting_user_id, family_id, FamilyRole.ADMIN)
        target = self.authorizer.require_active_member(family_id, target_user_id)
        ensure_target_not_admin(target, CannotDeleteAdmin)
        self.authorizer.ensure_account_removable(target_user_id)

        user = self.table.get_user(target_user_id)
        if user is None:
            raise NotFound("User", target_user_id)
        self.table.delete_user_cascade(user)
        logger.info(
            "Member account deleted",
            extra={
                "family_id": family_id,
                "user_id": acting_user_id,
                "target_user_id": target_user_id,
            },
        )
