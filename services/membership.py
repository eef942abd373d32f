"""
Family membership authorization.

authorize_family_access is the single gate every family-scoped operation
passes through. The ensure_* guards layer the rules that depend on the
relationship between the acting user and a target user (self-actions,
admin preservation) on top of it.
"""

from typing import List, Optional

from models.family import FamilyMember, FamilyRole, Membership
from services.dynamodb import WishlistTable
from utils.errors import (InsufficientRole, LastAdminCannotBeDemoted,
                          MembershipInactive, NotAMember, NotFound,
                          SelfActionForbidden)
from utils.logging import log_rejection, setup_logger

logger = setup_logger(__name__)


class MembershipAuthorizer:
    """Answers whether a user may act on a family, optionally with a role."""

    def __init__(self, table: WishlistTable):
        self.table = table

    def authorize_family_access(
        self,
        user_id: str,
        family_id: str,
        required_role: Optional[FamilyRole] = None,
    ) -> Membership:
        """
        Check a user's membership of a family.

        Checks run in a fixed order (exists, active, role) so a non-member
        learns nothing about the family.

        Args:
            user_id: The acting user
            family_id: The family being accessed
            required_role: FamilyRole.ADMIN for admin-only operations

        Returns:
            The membership together with its family

        Raises:
            NotAMember: No membership row exists
            MembershipInactive: The row exists but is not ACTIVE
            InsufficientRole: ADMIN was required and the member is not one
        """
        context = {"user_id": user_id, "family_id": family_id}

        member = self.table.get_member(family_id, user_id)
        if member is None:
            error = NotAMember()
            log_rejection(logger, error, context)
            raise error

        if not member.is_active:
            error = MembershipInactive()
            log_rejection(logger, error, context)
            raise error

        if required_role == FamilyRole.ADMIN and not member.is_admin:
            error = InsufficientRole()
            log_rejection(logger, error, context)
            raise error

        family = self.table.get_family(family_id)
        if family is None:
            # Orphaned membership; report it the same way as a non-member.
            raise NotAMember()

        return Membership(member=member, family=family)

    def require_active_member(self, family_id: str, user_id: str) -> FamilyMember:
        """Fetch a target user's ACTIVE membership or fail with NotFound."""
        member = self.table.get_member(family_id, user_id)
        if member is None or not member.is_active:
            raise NotFound("Family member", user_id)
        return member

    def ensure_account_removable(self, user_id: str) -> None:
        """
        Reject deleting an account that is the last ACTIVE ADMIN of any family
        that still has other ACTIVE members.

        Raises:
            LastAdminCannotBeDemoted: The user must hand over the role first
        """
        for membership in self.table.list_user_memberships(user_id):
            if not (membership.is_active and membership.is_admin):
                continue
            members = self.table.list_family_members(membership.family_id)
            if any(m.is_active and m.user_id != user_id for m in members):
                ensure_admin_remains(members, user_id)


def ensure_not_self(acting_user_id: str, target_user_id: str, action: str) -> None:
    """
    Reject member-management actions aimed at the caller's own account.

    Args:
        acting_user_id: The user performing the action
        target_user_id: The user the action applies to
        action: Verb used in the error message, e.g. "promote"
    """
    if acting_user_id == target_user_id:
        raise SelfActionForbidden(
            f"You cannot {action} yourself through family management. "
            "Use your account settings instead."
        )


def count_active_admins(members: List[FamilyMember]) -> int:
    """Number of ACTIVE members holding the ADMIN role."""
    return sum(1 for m in members if m.is_active and m.is_admin)


def ensure_admin_remains(members: List[FamilyMember], leaving_user_id: str) -> None:
    """
    Reject a change that would leave the family without an ACTIVE ADMIN.

    Args:
        members: Current members of the family
        leaving_user_id: The admin losing the role or leaving
    """
    remaining = [
        m
        for m in members
        if m.user_id != leaving_user_id and m.is_active and m.is_admin
    ]
    if not remaining:
        raise LastAdminCannotBeDemoted()


def ensure_target_not_admin(target: FamilyMember, error_cls) -> None:
    """Only MEMBERs may be removed, deleted or reset by an admin."""
    if target.is_admin:
        raise error_cls()


def ensure_sole_member(members: List[FamilyMember], user_id: str, error_cls) -> None:
    """
    Reject the action with error_cls while anyone besides user_id is ACTIVE.

    Args:
        members: Current members of the family
        user_id: The member who may remain
        error_cls: WishlistError subclass to raise
    """
    others = [m for m in members if m.is_active and m.user_id != user_id]
    if others:
        raise error_cls()
