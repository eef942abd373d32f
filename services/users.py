"""
User accounts: registration, login with lockout, profile and password
management, and the family-admin paths that act on other accounts.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from models.admin import SiteAdminEligibility
from models.dynamodb import utc_now
from models.family import (CreateMemberRequest, FamilyMember, FamilyRole,
                           MemberStatus, MemberView)
from models.policy import WishlistPolicy
from models.users import (PasswordChange, RegisterRequest, UserBase,
                          UserProfile, UserUpdate)
from services.dynamodb import WishlistTable
from services.membership import (MembershipAuthorizer, ensure_not_self,
                                 ensure_target_not_admin)
from utils.errors import (AccountLocked, AlreadyMember, AuthenticationFailed,
                          CannotResetAdminPassword, ConcurrentModification,
                          FamilyFull, NotFound, ValidationFailed)
from utils.logging import log_rejection, setup_logger
from utils.security import hash_password, password_problems, verify_password

logger = setup_logger(__name__)

MAX_FAILED_LOGINS = 5
LOCKOUT_DURATION = timedelta(minutes=15)


def check_password_policy(password: str) -> None:
    problems = password_problems(password)
    if problems:
        raise ValidationFailed(problems[0], details={"password": problems})


class UserService:
    def __init__(
        self,
        table: WishlistTable,
        policy: Optional[WishlistPolicy] = None,
        authorizer: Optional[MembershipAuthorizer] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.table = table
        self.policy = policy or WishlistPolicy()
        self.authorizer = authorizer or MembershipAuthorizer(table)
        self.clock = clock

    def _get_user(self, user_id: str) -> UserBase:
        user = self.table.get_user(user_id)
        if user is None:
            raise NotFound("User", user_id)
        return user

    def site_admin_eligibility(self, email: str) -> SiteAdminEligibility:
        """
        Whether an account registered now with this email would be a site
        admin: the very first account is, and so is any email listed in the
        admin_emails policy.
        """
        if not self.table.first_user_claimed():
            return SiteAdminEligibility(will_be_admin=True, reason="first_user")
        if email.strip().lower() in self.policy.admin_emails:
            return SiteAdminEligibility(will_be_admin=True, reason="admin_email")
        return SiteAdminEligibility(will_be_admin=False)

    def _new_user(self, email: str, name: str, password: str) -> UserBase:
        check_password_policy(password)
        now = self.clock()
        eligibility = self.site_admin_eligibility(email)
        first_user = eligibility.reason == "first_user"
        user = UserBase(
            email=email,
            name=name.strip(),
            password_hash=hash_password(password),
            is_admin=eligibility.will_be_admin,
            created_at=now,
            updated_at=now,
        )
        try:
            self.table.create_user(user, claim_first_user=first_user)
        except ConcurrentModification:
            if not first_user:
                raise
            # Another registration became the first account meanwhile
            user.is_admin = user.email in self.policy.admin_emails
            self.table.create_user(user)

        logger.info(
            "User registered", extra={"user_id": user.user_id, "is_admin": user.is_admin}
        )
        return user

    def register_user(self, data: RegisterRequest) -> UserProfile:
        """
        Create an account.

        Raises:
            ValidationFailed: The password breaks the password policy
            EmailAlreadyRegistered: The email belongs to another account
        """
        user = self._new_user(data.email, data.name, data.password)
        return UserProfile.from_user(user)

    def authenticate(self, email: str, password: str) -> UserBase:
        """
        Check credentials, locking the account for 15 minutes after five
        consecutive failures. A successful login clears the counter.
        """
        user = self.table.get_user_by_email(email)
        if user is None:
            raise AuthenticationFailed()

        now = self.clock()
        if user.is_locked(now):
            error = AccountLocked(details={"locked_until": user.lockout_until.isoformat()})
            log_rejection(logger, error, {"user_id": user.user_id})
            raise error

        if not verify_password(password, user.password_hash):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= MAX_FAILED_LOGINS:
                user.lockout_until = now + LOCKOUT_DURATION
                logger.warning(
                    "Account locked after repeated failed logins",
                    extra={"user_id": user.user_id, "attempts": user.failed_login_attempts},
                )
            self.table.put_user(user)
            raise AuthenticationFailed()

        if user.failed_login_attempts or user.lockout_until:
            user.failed_login_attempts = 0
            user.lockout_until = None
            self.table.put_user(user)

        logger.info("User logged in", extra={"user_id": user.user_id})
        return user

    def get_profile(self, user_id: str) -> UserProfile:
        return UserProfile.from_user(self._get_user(user_id))

    def update_profile(self, user_id: str, data: UserUpdate) -> UserProfile:
        user = self._get_user(user_id)
        user.name = data.name.strip()
        user.updated_at = self.clock()
        self.table.put_user(user)
        return UserProfile.from_user(user)

    def change_password(self, user_id: str, data: PasswordChange) -> None:
        user = self._get_user(user_id)
        if not verify_password(data.current_password, user.password_hash):
            raise ValidationFailed("Current password is incorrect")
        check_password_policy(data.new_password)

        user.password_hash = hash_password(data.new_password)
        user.updated_at = self.clock()
        self.table.put_user(user)
        revoked = self.table.revoke_user_refresh_tokens(user_id)
        logger.info(
            "Password changed", extra={"user_id": user_id, "sessions_revoked": revoked}
        )

    def delete_user(self, user_id: str) -> None:
        """
        Delete an account and everything it owns. The last ADMIN of a family
        that still has other members must hand over the role first.
        """
        user = self._get_user(user_id)
        self.authorizer.ensure_account_removable(user_id)
        self.table.delete_user_cascade(user)

    # Family admin paths

    def reset_member_password(
        self,
        family_id: str,
        acting_user_id: str,
        target_user_id: str,
        new_password: str,
    ) -> None:
        """Set a MEMBER's password, clear their lockout and end their sessions."""
        ensure_not_self(acting_user_id, target_user_id, "reset the password of")
        self.authorizer.authorize_family_access(acting_user_id, family_id, FamilyRole.ADMIN)
        target = self.authorizer.require_active_member(family_id, target_user_id)
        ensure_target_not_admin(target, CannotResetAdminPassword)
        check_password_policy(new_password)

        user = self._get_user(target_user_id)
        user.password_hash = hash_password(new_password)
        user.failed_login_attempts = 0
        user.lockout_until = None
        user.updated_at = self.clock()
        self.table.put_user(user)
        self.table.revoke_user_refresh_tokens(target_user_id)

        logger.info(
            "Member password reset",
            extra={
                "family_id": family_id,
                "user_id": acting_user_id,
                "target_user_id": target_user_id,
            },
        )

    def create_family_member(
        self, family_id: str, acting_user_id: str, data: CreateMemberRequest
    ) -> MemberView:
        """
        Add a user to the family as an ACTIVE MEMBER, creating the account
        first when no user has the email.
        """
        membership = self.authorizer.authorize_family_access(
            acting_user_id, family_id, FamilyRole.ADMIN
        )

        user = self.table.get_user_by_email(data.email)
        existing = self.table.get_member(family_id, user.user_id) if user else None
        if existing is not None and existing.is_active:
            raise AlreadyMember("User is already a member of this family")

        # Checked before any account is created; add_member enforces it atomically
        if membership.family.active_member_count >= self.policy.max_family_members:
            raise FamilyFull(
                f"This family has reached the maximum number of members "
                f"({self.policy.max_family_members})"
            )

        if user is None:
            user = self._new_user(data.email, data.name, data.password)

        member = existing or FamilyMember(
            family_id=family_id,
            user_id=user.user_id,
            role=FamilyRole.MEMBER,
            joined_at=self.clock(),
        )
        member.status = MemberStatus.ACTIVE
        self.table.add_member(member, self.policy.max_family_members)

        logger.info(
            "Member added by admin",
            extra={
                "family_id": family_id,
                "user_id": acting_user_id,
                "target_user_id": user.user_id,
            },
        )
        return MemberView(
            user_id=user.user_id,
            name=user.name,
            email=user.email,
            role=member.role,
            status=member.status,
            joined_at=member.joined_at,
        )
