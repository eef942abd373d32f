"""
Domain errors for the family wishlist backend.

Every business-rule rejection raised by the services is a subclass of
WishlistError. Each carries a stable error code and the HTTP status the API
layer should answer with, so handlers can translate them without inspecting
messages.
"""

from typing import Any, Dict, Optional

from .responses import HTTPStatus


class WishlistError(Exception):
    """Base class for all typed domain errors."""

    error_code = "WISHLIST_ERROR"
    status = HTTPStatus.BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(
        self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


# Input validation


class ValidationFailed(WishlistError):
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class SelfActionForbidden(ValidationFailed):
    error_code = "SELF_ACTION_FORBIDDEN"
    default_message = (
        "You cannot perform this action on yourself through family management. "
        "Use your account settings instead."
    )


# Membership authorization


class NotAMember(WishlistError):
    error_code = "NOT_A_MEMBER"
    status = HTTPStatus.FORBIDDEN
    default_message = "You are not a member of this family"


class MembershipInactive(WishlistError):
    error_code = "MEMBERSHIP_INACTIVE"
    status = HTTPStatus.FORBIDDEN
    default_message = "Your family membership is not active"


class InsufficientRole(WishlistError):
    error_code = "INSUFFICIENT_ROLE"
    status = HTTPStatus.FORBIDDEN
    default_message = "Admin access required"


# Invariant preservation


class LastAdminCannotBeDemoted(ValidationFailed):
    error_code = "LAST_ADMIN"
    default_message = (
        "Cannot remove the last admin. There must be at least one admin in the family."
    )


class CannotRemoveAdmin(WishlistError):
    error_code = "CANNOT_REMOVE_ADMIN"
    status = HTTPStatus.FORBIDDEN
    default_message = "Cannot remove other family admins"


class CannotDeleteAdmin(WishlistError):
    error_code = "CANNOT_DELETE_ADMIN"
    status = HTTPStatus.FORBIDDEN
    default_message = "Cannot delete other family admin accounts"


class CannotResetAdminPassword(WishlistError):
    error_code = "CANNOT_RESET_ADMIN_PASSWORD"
    status = HTTPStatus.FORBIDDEN
    default_message = "Cannot reset the password of another family admin"


class FamilyNotEmpty(ValidationFailed):
    error_code = "FAMILY_NOT_EMPTY"
    default_message = (
        "Cannot delete family with other active members. "
        "Remove all other members first."
    )


# Join flow


class InvalidInviteCode(ValidationFailed):
    error_code = "INVALID_INVITE_CODE"
    default_message = "Invalid invite code"


class FamilyFull(ValidationFailed):
    error_code = "FAMILY_FULL"
    default_message = "This family has reached the maximum number of members"


class AlreadyMember(WishlistError):
    error_code = "ALREADY_MEMBER"
    status = HTTPStatus.CONFLICT
    default_message = "You are already a member of this family"


class InviteCodeExhausted(WishlistError):
    error_code = "INVITE_CODE_EXHAUSTED"
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Failed to generate unique invite code after maximum retries"


# Lookups


class NotFound(WishlistError):
    error_code = "RESOURCE_NOT_FOUND"
    status = HTTPStatus.NOT_FOUND
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", identifier: Optional[str] = None):
        self.resource = resource
        if identifier:
            message = f"{resource} '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)


# Wishlist and reservations


class NotItemOwner(WishlistError):
    error_code = "NOT_ITEM_OWNER"
    status = HTTPStatus.FORBIDDEN
    default_message = "You can only modify your own wishlist items"


class CannotReserveOwnItem(ValidationFailed):
    error_code = "CANNOT_RESERVE_OWN_ITEM"
    default_message = "You cannot reserve your own items"


class AlreadyReserved(WishlistError):
    error_code = "ALREADY_RESERVED"
    status = HTTPStatus.CONFLICT
    default_message = "This item is already reserved"


class ReservationRequired(WishlistError):
    error_code = "RESERVATION_REQUIRED"
    status = HTTPStatus.CONFLICT
    default_message = "You must reserve this item before marking it as purchased"


class CrossFamilyCategory(ValidationFailed):
    error_code = "CROSS_FAMILY_CATEGORY"
    default_message = "Category must belong to the same family"


class CategoryHasItems(ValidationFailed):
    error_code = "CATEGORY_HAS_ITEMS"
    default_message = "Cannot delete category with existing wishlist items"


class CategoryNameTaken(WishlistError):
    error_code = "CATEGORY_NAME_TAKEN"
    status = HTTPStatus.CONFLICT
    default_message = "A category with this name already exists in this family"


# Accounts


class EmailAlreadyRegistered(WishlistError):
    error_code = "EMAIL_ALREADY_REGISTERED"
    status = HTTPStatus.CONFLICT
    default_message = "User with this email already exists"


class AuthenticationFailed(WishlistError):
    error_code = "AUTHENTICATION_ERROR"
    status = HTTPStatus.UNAUTHORIZED
    default_message = "Invalid email or password"


class AccountLocked(WishlistError):
    error_code = "ACCOUNT_LOCKED"
    status = HTTPStatus.LOCKED
    default_message = "Account is temporarily locked due to too many failed attempts"


class RateLimitExceeded(WishlistError):
    error_code = "RATE_LIMIT_EXCEEDED"
    status = HTTPStatus.TOO_MANY_REQUESTS
    default_message = "Too many requests"


class ConcurrentModification(WishlistError):
    error_code = "CONCURRENT_MODIFICATION"
    status = HTTPStatus.CONFLICT
    default_message = "The resource was changed by another request, please retry"
