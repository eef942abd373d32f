"""
Authentication handlers for the family wishlist API.

Registration and login are the only endpoints that see raw credentials;
both answer with an access token for the Lambda authorizer to verify on
later requests, and a refresh token that buys new access tokens until it
is revoked or expires. Everything here is rate limited per client IP.
"""

from pydantic import ValidationError

from models.admin import EligibilityQuery
from models.users import (LoginRequest, RefreshRequest, RegisterRequest,
                          UserProfile)
from services.credentials import CredentialService
from services.dynamodb import get_table
from services.parameter_store import config
from services.sessions import SessionService
from services.users import UserService
from utils.decorators import lambda_handler, validate_json_body
from utils.rate_limit import FixedWindowRateLimiter
from utils.responses import HTTPStatus, success_response, validation_error_response

auth_rate_limiter = FixedWindowRateLimiter(**config.load_rate_limit_config())


def _users() -> UserService:
    return UserService(get_table(), config.load_policy())


def _sessions() -> SessionService:
    return SessionService(get_table(), CredentialService(**config.load_auth_config()))


@lambda_handler(rate_limiter=auth_rate_limiter)
@validate_json_body(required_fields=["email", "password", "name"])
def register(event, context):
    """
    Create an account and sign the new user in.

    POST /auth/register

    Args:
        event: Lambda event object with email, password and name
        context: Lambda context object

    Returns:
        HTTP response with the user profile, an access token and a refresh token
    """
    try:
        data = RegisterRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Registration validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    profile = _users().register_user(data)
    user = get_table().get_user(profile.id)

    return success_response(
        data={"user": profile, **_sessions().start_session(user)},
        message="User registered successfully",
        status_code=HTTPStatus.CREATED,
    )


@lambda_handler(log_event=False, rate_limiter=auth_rate_limiter)
@validate_json_body(required_fields=["email", "password"])
def login(event, context):
    """
    Exchange email and password for an access token and a refresh token.

    POST /auth/login

    Args:
        event: Lambda event object with email, password and optional remember_me
        context: Lambda context object

    Returns:
        HTTP response with the user profile and both tokens
    """
    try:
        data = LoginRequest(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Login validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    user = _users().authenticate(data.email, data.password)

    return success_response(
        data={
            "user": UserProfile.from_user(user),
            **_sessions().start_session(user, remember_me=data.remember_me),
        },
        message="Login successful",
    )


@lambda_handler(log_event=False, rate_limiter=auth_rate_limiter)
@validate_json_body(required_fields=["refresh_token"])
def refresh(event, context):
    """
    Exchange a refresh token for a new access token.

    POST /auth/refresh
    """
    data = RefreshRequest(**event["json_body"])
    access_token = _sessions().refresh(data.refresh_token)
    return success_response(
        data={"access_token": access_token, "token_type": "Bearer"},
        message="Token refreshed successfully",
    )


@lambda_handler(log_event=False)
@validate_json_body()
def logout(event, context):
    """
    Revoke the refresh token in the body, if any. Always succeeds.

    POST /auth/logout
    """
    refresh_token = event["json_body"].get("refresh_token")
    if isinstance(refresh_token, str) and refresh_token:
        _sessions().revoke(refresh_token)
    return success_response(message="Logged out successfully")


@lambda_handler(rate_limiter=auth_rate_limiter)
def will_be_admin(event, context):
    """
    Tell a registration form whether the email would get site admin rights.

    GET /auth/will-be-admin?email=...
    """
    try:
        query = EligibilityQuery(**(event.get("queryStringParameters") or {}))
    except ValidationError as e:
        return validation_error_response(
            "Invalid email address",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    eligibility = _users().site_admin_eligibility(query.email)
    return success_response(data=eligibility)
