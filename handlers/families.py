"""
Family handlers for the family wishlist API.

Creation, lookup, update and deletion of families, plus the invite flow:
inspecting and regenerating codes, previewing a code, joining, moving to
another family and leaving.
"""

from pydantic import ValidationError

from models.family import FamilyCreate, FamilyUpdate, JoinFamilyRequest
from services.dynamodb import get_table
from services.families import FamilyService
from services.parameter_store import config
from utils.decorators import (extract_path_params, lambda_handler,
                              require_auth, validate_json_body)
from utils.responses import HTTPStatus, success_response, validation_error_response


def _families() -> FamilyService:
    return FamilyService(get_table(), config.load_policy())


def _query_flag(event, name: str) -> bool:
    params = event.get("queryStringParameters") or {}
    return str(params.get(name, "")).lower() in ("1", "true", "yes")


@lambda_handler()
@require_auth
@validate_json_body(required_fields=["name"])
def create_family(event, context):
    """
    Create a family with the caller as its admin.

    POST /families
    """
    try:
        data = FamilyCreate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Family validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    family = _families().create_family(event["principal"].id, data)
    return success_response(
        data=family,
        message=f"Family '{family.name}' created successfully",
        status_code=HTTPStatus.CREATED,
    )


@lambda_handler()
@require_auth
def list_my_families(event, context):
    """
    List the caller's families.

    GET /families/me?include_members=true
    """
    families = _families().get_user_families(
        event["principal"].id, include_members=_query_flag(event, "include_members")
    )
    return success_response(data={"families": families, "count": len(families)})


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def get_family(event, context):
    """
    Get a family the caller belongs to.

    GET /families/{familyId}?include_members=true&include_categories=true
    """
    family = _families().get_family(
        event["path_params"]["familyId"],
        event["principal"].id,
        include_members=_query_flag(event, "include_members"),
        include_categories=_query_flag(event, "include_categories"),
    )
    return success_response(data=family)


@lambda_handler()
@require_auth
@extract_path_params("familyId")
@validate_json_body()
def update_family(event, context):
    """
    Update a family's name, description or currency. Admin only.

    PUT /families/{familyId}
    """
    try:
        data = FamilyUpdate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Family validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    family = _families().update_family(
        event["path_params"]["familyId"], event["principal"].id, data
    )
    return success_response(data=family, message="Family updated successfully")


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def delete_family(event, context):
    """
    Delete a family. Only its last remaining member, an admin, may do this.

    DELETE /families/{familyId}
    """
    _families().delete_family(event["path_params"]["familyId"], event["principal"].id)
    return success_response(message="Family deleted successfully")


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def get_family_stats(event, context):
    """
    Member counts for a family the caller belongs to.

    GET /families/{familyId}/stats
    """
    families = _families()
    family_id = event["path_params"]["familyId"]
    families.authorizer.authorize_family_access(event["principal"].id, family_id)
    return success_response(data=families.get_family_stats(family_id))


@lambda_handler()
@require_auth
@validate_json_body(required_fields=["invite_code"])
def join_family(event, context):
    """
    Join a family with an invite code.

    POST /families/join
    """
    try:
        data = JoinFamilyRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Join request validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    result = _families().join_family(event["principal"].id, data.invite_code)
    if result.rejoined:
        return success_response(data=result, message="Successfully rejoined family")
    return success_response(
        data=result,
        message=f"Successfully joined {result.family.name}",
        status_code=HTTPStatus.CREATED,
    )


@lambda_handler()
@require_auth
@validate_json_body(required_fields=["invite_code"])
def leave_and_join(event, context):
    """
    Leave the caller's current families and join another one.

    POST /families/leave-and-join
    """
    try:
        data = JoinFamilyRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Join request validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    result = _families().leave_and_join(event["principal"].id, data.invite_code)
    if result.left_families:
        left = ", ".join(f["name"] for f in result.left_families)
        message = f"Successfully left {left} and joined {result.family.name}"
    else:
        message = f"Successfully joined {result.family.name}"
    return success_response(data=result, message=message, status_code=HTTPStatus.CREATED)


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def leave_family(event, context):
    """
    Leave a family.

    POST /families/{familyId}/leave
    """
    _families().leave_family(event["path_params"]["familyId"], event["principal"].id)
    return success_response(message="Successfully left family")


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def get_invite_info(event, context):
    """
    Invite code and shareable link for a family. Admin only.

    GET /families/{familyId}/invite
    """
    info = _families().get_invite_info(
        event["path_params"]["familyId"], event["principal"].id
    )
    return success_response(data=info)


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def regenerate_invite(event, context):
    """
    Replace a family's invite code; the old code stops working. Admin only.

    POST /families/{familyId}/regenerate-invite
    """
    info = _families().regenerate_invite_code(
        event["path_params"]["familyId"], event["principal"].id
    )
    return success_response(data=info, message="Invite code regenerated successfully")


@lambda_handler()
@extract_path_params("code")
def preview_invite(event, context):
    """
    Public preview of the family behind an invite code.

    GET /families/invite/{code}
    """
    preview = _families().preview_invite(event["path_params"]["code"])
    return success_response(data=preview)
