"""
Reservation handlers for the family wishlist API.

Reserve, cancel and purchase act on an item; the caller's own reservations
are listed separately.
"""

from pydantic import ValidationError

from models.wishlist import PurchaseRequest, ReservationStatus
from services.dynamodb import get_table
from services.parameter_store import config
from services.reservations import ReservationService
from utils.decorators import (extract_path_params, lambda_handler,
                              require_auth, validate_json_body)
from utils.responses import HTTPStatus, success_response, validation_error_response


def _reservations() -> ReservationService:
    return ReservationService(get_table(), config.load_policy())


@lambda_handler()
@require_auth
@extract_path_params("itemId")
def reserve_item(event, context):
    """
    Reserve another family member's item.

    POST /wishlist/{itemId}/reserve
    """
    item = _reservations().reserve_item(
        event["path_params"]["itemId"], event["principal"].id
    )
    return success_response(
        data=item, message="Item reserved successfully", status_code=HTTPStatus.CREATED
    )


@lambda_handler()
@require_auth
@extract_path_params("itemId")
def cancel_reservation(event, context):
    """
    Cancel the caller's reservation of an item.

    DELETE /wishlist/{itemId}/reserve
    """
    item = _reservations().cancel_reservation(
        event["path_params"]["itemId"], event["principal"].id
    )
    return success_response(data=item, message="Reservation cancelled successfully")


@lambda_handler()
@require_auth
@extract_path_params("itemId")
@validate_json_body()
def mark_purchased(event, context):
    """
    Mark an item the caller reserved as purchased.

    POST /wishlist/{itemId}/purchase
    """
    try:
        data = PurchaseRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Purchase validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    item = _reservations().mark_purchased(
        event["path_params"]["itemId"], event["principal"].id, data.notes
    )
    return success_response(data=item, message="Item marked as purchased")


@lambda_handler()
@require_auth
def list_my_reservations(event, context):
    """
    List the caller's reservations, newest first.

    GET /reservations/me?status=&page=&limit=
    """
    params = event.get("queryStringParameters") or {}
    try:
        status = ReservationStatus(params["status"].upper()) if params.get("status") else None
        page = int(params.get("page") or 1)
        limit = int(params.get("limit") or 10)
    except ValueError as e:
        return validation_error_response(
            "Query validation failed", {"query_error": str(e)}
        )

    result = _reservations().list_my_reservations(
        event["principal"].id, status=status, page=page, limit=limit
    )
    return success_response(data=result)
