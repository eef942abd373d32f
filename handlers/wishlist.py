"""
Wishlist item handlers for the family wishlist API.

Items are created in, and listed per, family. What a caller sees of an
item's reservation depends on whether they own it; the services take care
of that, so these handlers only parse and forward.
"""

from typing import Any, Dict

from pydantic import ValidationError

from models.wishlist import WishlistItemCreate, WishlistItemUpdate, WishlistQuery
from services.dynamodb import get_table
from services.wishlist import WishlistService
from utils.decorators import (extract_path_params, lambda_handler,
                              require_auth, validate_json_body)
from utils.responses import HTTPStatus, success_response, validation_error_response


def _query_params(event: Dict[str, Any]) -> WishlistQuery:
    """Build the listing filters from the query string; empty values are ignored."""
    params = event.get("queryStringParameters") or {}
    return WishlistQuery(**{k: v for k, v in params.items() if v not in (None, "")})


@lambda_handler()
@require_auth
@validate_json_body(required_fields=["title", "category_id"])
def create_item(event, context):
    """
    Add an item to the caller's wishlist in the category's family.

    POST /wishlist
    """
    try:
        data = WishlistItemCreate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Wishlist item validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    item = WishlistService(get_table()).create_item(event["principal"].id, data)
    return success_response(
        data=item,
        message="Wishlist item created successfully",
        status_code=HTTPStatus.CREATED,
    )


@lambda_handler()
@require_auth
@extract_path_params("itemId")
def get_item(event, context):
    """
    Get one item as the caller sees it.

    GET /wishlist/{itemId}
    """
    item = WishlistService(get_table()).get_item(
        event["path_params"]["itemId"], event["principal"].id
    )
    return success_response(data=item)


@lambda_handler()
@require_auth
@extract_path_params("itemId")
@validate_json_body()
def update_item(event, context):
    """
    Update one of the caller's own items.

    PUT /wishlist/{itemId}
    """
    try:
        data = WishlistItemUpdate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Wishlist item validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    item = WishlistService(get_table()).update_item(
        event["path_params"]["itemId"], event["principal"].id, data
    )
    return success_response(data=item, message="Wishlist item updated successfully")


@lambda_handler()
@require_auth
@extract_path_params("itemId")
def delete_item(event, context):
    """
    Delete one of the caller's own items, with its reservations.

    DELETE /wishlist/{itemId}
    """
    WishlistService(get_table()).delete_item(
        event["path_params"]["itemId"], event["principal"].id
    )
    return success_response(message="Wishlist item deleted successfully")


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def list_family_items(event, context):
    """
    List a family's items.

    GET /families/{familyId}/wishlist?category_id=&priority=&min_price=&max_price=&search=&page=&limit=
    """
    try:
        query = _query_params(event)
    except ValidationError as e:
        return validation_error_response(
            "Query validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    page = WishlistService(get_table()).list_family_items(
        event["path_params"]["familyId"], event["principal"].id, query
    )
    return success_response(data=page)


@lambda_handler()
@require_auth
@extract_path_params("userId")
def list_user_items(event, context):
    """
    List one user's items that the caller is allowed to see.

    GET /users/{userId}/wishlist
    """
    try:
        query = _query_params(event)
    except ValidationError as e:
        return validation_error_response(
            "Query validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    page = WishlistService(get_table()).list_user_items(
        event["path_params"]["userId"], event["principal"].id, query
    )
    return success_response(data=page)


@lambda_handler()
@require_auth
@extract_path_params("itemId")
def get_price_history(event, context):
    """
    Recorded prices of an item, oldest first.

    GET /wishlist/{itemId}/price-history
    """
    history = WishlistService(get_table()).get_price_history(
        event["path_params"]["itemId"], event["principal"].id
    )
    return success_response(data={"price_history": history, "count": len(history)})
