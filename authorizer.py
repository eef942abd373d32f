"""
JWT Authorization Lambda for API Gateway.

This module validates the access tokens issued at login and verifies that
the user still exists and is not locked out.
"""

from typing import Any, Dict

from models.dynamodb import utc_now
from services.credentials import CredentialService
from services.dynamodb import get_table
from services.parameter_store import config
from utils.logging import log_error, setup_logger

logger = setup_logger(__name__)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    HTTP API Gateway Lambda Authorizer.

    Validates the bearer token and passes the principal on as the
    authorizer context, which require_auth reads on the other side.

    Args:
        event: API Gateway authorizer event
        context: Lambda context object

    Returns:
        Authorization response for API Gateway
    """
    logger.info(
        "Authorization request received",
        extra={
            "request_id": getattr(context, "aws_request_id", "unknown"),
            "method": event.get("requestContext", {}).get("http", {}).get("method"),
            "path": event.get("rawPath"),
        },
    )

    try:
        credentials = CredentialService(**config.load_auth_config())
        principal = credentials.get_principal_from_request(event)
        if principal is None:
            logger.warning("Authorization failed: no valid access token in request")
            return {"isAuthorized": False}

        user = get_table().get_user(principal.id)
        if user is None:
            logger.warning(
                "User not found in DynamoDB, denying access.",
                extra={"user_id": principal.id},
            )
            return {"isAuthorized": False}

        if user.is_locked(utc_now()):
            logger.warning("Locked account denied", extra={"user_id": principal.id})
            return {"isAuthorized": False}

        logger.info("User authorized successfully", extra={"user_id": user.user_id})

        # Context values are re-read from the database so renames show up
        # before the token expires
        return {
            "isAuthorized": True,
            "context": {
                "userId": user.user_id,
                "email": user.email,
                "name": user.name,
                "isAdmin": user.is_admin,
            },
        }

    except Exception as e:
        log_error(
            logger,
            e,
            {
                "event_path": event.get("rawPath"),
                "event_method": event.get("requestContext", {})
                .get("http", {})
                .get("method"),
            },
        )
        return {"isAuthorized": False}
