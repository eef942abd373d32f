"""
HTTP responses for the wishlist Lambda functions.

Every endpoint answers with a JSON body and the same CORS headers. Success
bodies carry an optional message next to the returned fields; error bodies
always carry "error" and, for anything the caller can act on, a stable
"error_code".
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class HTTPStatus(Enum):
    """HTTP status codes used by the API."""

    OK = 200
    CREATED = 201
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    LOCKED = 423
    TOO_MANY_REQUESTS = 429
    INTERNAL_SERVER_ERROR = 500


cors_headers = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
}


class APIJSONEncoder(json.JSONEncoder):
    """Encodes the DynamoDB and pydantic values that reach a response body."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json")
        return super().default(obj)


def create_response(
    status_code: Union[int, HTTPStatus], body: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Build a Lambda proxy response with a JSON body.

    Args:
        status_code: HTTP status code
        body: Response body, JSON serialized with APIJSONEncoder

    Returns:
        Lambda HTTP response dictionary
    """
    if isinstance(status_code, HTTPStatus):
        status_code = status_code.value

    return {
        "statusCode": status_code,
        "headers": dict(cors_headers),
        "body": json.dumps(body, cls=APIJSONEncoder),
    }


def success_response(
    data: Any = None,
    message: Optional[str] = None,
    status_code: Union[int, HTTPStatus] = HTTPStatus.OK,
) -> Dict[str, Any]:
    """
    Create a success response.

    Models and dicts are merged into the top level of the body; anything
    else (a list, a scalar) is returned under "data".

    Args:
        data: Response data
        message: Success message
        status_code: HTTP status code

    Returns:
        Lambda HTTP response dictionary
    """
    body = {"message": message} if message else {}

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    if isinstance(data, dict):
        body.update(data)
    elif data is not None:
        body["data"] = data

    return create_response(status_code, body)


def error_response(
    message: str,
    status_code: Union[int, HTTPStatus] = HTTPStatus.INTERNAL_SERVER_ERROR,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Create an error response.

    Args:
        message: Error message
        status_code: HTTP status code
        error_code: Application-specific error code
        details: Additional error details

    Returns:
        Lambda HTTP response dictionary
    """
    body = {"error": message}
    if error_code:
        body["error_code"] = error_code
    if details:
        body["details"] = details
    return create_response(status_code, body)


def domain_error_response(error) -> Dict[str, Any]:
    """Answer with the status and body a WishlistError carries."""
    return create_response(error.status, error.to_dict())


def validation_error_response(
    message: str = "Validation failed", errors: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return error_response(
        message, HTTPStatus.BAD_REQUEST, error_code="VALIDATION_ERROR", details=errors
    )


def unauthorized_response(message: str = "Unauthorized access") -> Dict[str, Any]:
    return error_response(
        message, HTTPStatus.UNAUTHORIZED, error_code="UNAUTHORIZED"
    )
