"""
Family member management handlers.

Listing members is open to any ACTIVE member; everything else is an admin
action against another member of the same family.
"""

from pydantic import ValidationError

from models.family import CreateMemberRequest
from models.users import PasswordReset
from services.dynamodb import get_table
from services.families import FamilyService
from services.parameter_store import config
from services.users import UserService
from utils.decorators import (extract_path_params, lambda_handler,
                              require_auth, validate_json_body)
from utils.responses import HTTPStatus, success_response, validation_error_response


def _families() -> FamilyService:
    return FamilyService(get_table(), config.load_policy())


def _users() -> UserService:
    return UserService(get_table(), config.load_policy())


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def list_members(event, context):
    """
    List the ACTIVE members of a family, admins first.

    GET /families/{familyId}/members
    """
    members = _families().list_members(
        event["path_params"]["familyId"], event["principal"].id
    )
    return success_response(data={"members": members, "count": len(members)})


@lambda_handler()
@require_auth
@extract_path_params("familyId", "userId")
def promote_member(event, context):
    """
    Make a member an admin.

    POST /families/{familyId}/members/{userId}/promote
    """
    params = event["path_params"]
    member = _families().promote_member(
        params["familyId"], event["principal"].id, params["userId"]
    )
    return success_response(data=member, message=f"{member.name} is now an admin")


@lambda_handler()
@require_auth
@extract_path_params("familyId", "userId")
def demote_member(event, context):
    """
    Make an admin a regular member again.

    POST /families/{familyId}/members/{userId}/demote
    """
    params = event["path_params"]
    member = _families().demote_member(
        params["familyId"], event["principal"].id, params["userId"]
    )
    return success_response(data=member, message=f"{member.name} is no longer an admin")


@lambda_handler()
@require_auth
@extract_path_params("familyId", "userId")
def remove_member(event, context):
    """
    Remove a member from the family. Admins cannot be removed.

    DELETE /families/{familyId}/members/{userId}
    """
    params = event["path_params"]
    _families().remove_member(params["familyId"], event["principal"].id, params["userId"])
    return success_response(message="Member removed successfully")


@lambda_handler()
@require_auth
@extract_path_params("familyId", "userId")
def delete_member_account(event, context):
    """
    Delete a member's whole account.

    DELETE /families/{familyId}/members/{userId}/account
    """
    params = event["path_params"]
    _families().delete_member_account(
        params["familyId"], event["principal"].id, params["userId"]
    )
    return success_response(message="Member account deleted successfully")


@lambda_handler(log_event=False)
@require_auth
@extract_path_params("familyId", "userId")
@validate_json_body(required_fields=["new_password"])
def reset_member_password(event, context):
    """
    Set a member's password and clear any lockout.

    PUT /families/{familyId}/members/{userId}/password
    """
    try:
        data = PasswordReset(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Password validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    params = event["path_params"]
    _users().reset_member_password(
        params["familyId"], event["principal"].id, params["userId"], data.new_password
    )
    return success_response(message="Password reset successfully")


@lambda_handler(log_event=False)
@require_auth
@extract_path_params("familyId")
@validate_json_body(required_fields=["email", "name", "password"])
def create_member(event, context):
    """
    Add a member to the family, creating their account if needed.

    POST /families/{familyId}/members
    """
    try:
        data = CreateMemberRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Member validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    member = _users().create_family_member(
        event["path_params"]["familyId"], event["principal"].id, data
    )
    return success_response(
        data=member,
        message="Member added successfully",
        status_code=HTTPStatus.CREATED,
    )
