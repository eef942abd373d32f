"""
User account handlers for the family wishlist API.

Every endpoint acts on the caller's own account, identified by the
principal the authorizer attached to the request.
"""

from pydantic import ValidationError

from models.users import PasswordChange, UserUpdate
from services.dynamodb import get_table
from services.parameter_store import config
from services.users import UserService
from services.wishlist import WishlistService
from utils.decorators import lambda_handler, require_auth, validate_json_body
from utils.responses import success_response, validation_error_response


def _users() -> UserService:
    return UserService(get_table(), config.load_policy())


@lambda_handler()
@require_auth
def get_me(event, context):
    """
    Get the authenticated user's profile.

    GET /users/me
    """
    profile = _users().get_profile(event["principal"].id)
    return success_response(data=profile)


@lambda_handler()
@require_auth
@validate_json_body(required_fields=["name"])
def update_me(event, context):
    """
    Update the authenticated user's display name.

    PUT /users/me
    """
    try:
        data = UserUpdate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Profile validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    profile = _users().update_profile(event["principal"].id, data)
    return success_response(data=profile, message="Profile updated successfully")


@lambda_handler(log_event=False)
@require_auth
@validate_json_body(required_fields=["current_password", "new_password"])
def change_password(event, context):
    """
    Change the authenticated user's password.

    PUT /users/me/password
    """
    try:
        data = PasswordChange(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Password validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    _users().change_password(event["principal"].id, data)
    return success_response(message="Password changed successfully")


@lambda_handler()
@require_auth
def delete_me(event, context):
    """
    Delete the authenticated user's account and everything it owns.

    DELETE /users/me
    """
    _users().delete_user(event["principal"].id)
    return success_response(message="Account deleted successfully")


@lambda_handler()
@require_auth
def get_my_stats(event, context):
    """
    Summarise the authenticated user's wishlist.

    GET /users/me/stats
    """
    stats = WishlistService(get_table()).get_user_wishlist_stats(event["principal"].id)
    return success_response(data=stats)
