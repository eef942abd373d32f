"""
Decorators for Lambda function handlers.

This module provides decorators that add consistent logging, error handling,
rate limiting and response formatting to Lambda functions.
"""

import json
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional

import pydantic

from models.users import Principal

from .errors import WishlistError
from .logging import (log_error, log_lambda_event, log_lambda_response,
                      log_rejection, setup_logger)
from .rate_limit import RateLimiter
from .responses import (HTTPStatus, domain_error_response, error_response,
                        unauthorized_response, validation_error_response)


def client_key(event: Dict[str, Any]) -> str:
    """Identify the calling client for rate limiting (source IP)."""
    request_context = event.get("requestContext") or {}
    source_ip = (request_context.get("http") or {}).get("sourceIp") or (
        request_context.get("identity") or {}
    ).get("sourceIp")
    if source_ip:
        return source_ip

    forwarded = (event.get("headers") or {}).get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def lambda_handler(
    logger_name: Optional[str] = None,
    log_event: bool = True,
    log_response: bool = True,
    structured_logging: bool = True,
    rate_limiter: Optional[RateLimiter] = None,
) -> Callable:
    """
    Decorator for Lambda function handlers that provides:
    - Consistent logging setup
    - Automatic event/response logging
    - Optional per-client rate limiting
    - Translation of domain and validation errors into HTTP responses
    - Execution time tracking

    Args:
        logger_name: Logger name (defaults to function module name)
        log_event: Whether to log incoming events
        log_response: Whether to log responses
        structured_logging: Whether to use structured JSON logging
        rate_limiter: Limiter consulted before the handler runs

    Returns:
        Decorated function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            logger = setup_logger(
                logger_name or func.__module__, structured=structured_logging
            )

            start_time = time.time()

            try:
                if log_event:
                    log_lambda_event(logger, event, context)

                if rate_limiter is not None:
                    rate_limiter.check(client_key(event))

                response = func(event, context)

                # Ensure response is properly formatted
                if not isinstance(response, dict) or "statusCode" not in response:
                    logger.warning("Handler returned invalid response format")
                    response = error_response(
                        "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR
                    )

            except WishlistError as e:
                log_rejection(
                    logger,
                    e,
                    {"request_id": getattr(context, "aws_request_id", "unknown")},
                )
                response = domain_error_response(e)

            except pydantic.ValidationError as e:
                response = validation_error_response(
                    f"{e.title} validation failed",
                    {
                        "validation_errors": e.errors(
                            include_url=False, include_context=False
                        )
                    },
                )

            except Exception as e:
                execution_time = (time.time() - start_time) * 1000

                log_error(
                    logger,
                    e,
                    {
                        "function_name": getattr(context, "function_name", "unknown"),
                        "request_id": getattr(context, "aws_request_id", "unknown"),
                        "execution_time_ms": execution_time,
                        "event_path": event.get("path") or event.get("rawPath"),
                        "event_method": event.get("httpMethod")
                        or event.get("requestContext", {})
                        .get("http", {})
                        .get("method"),
                    },
                )

                return error_response(
                    "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR
                )

            if log_response:
                execution_time = (time.time() - start_time) * 1000
                log_lambda_response(logger, response, execution_time)

            return response

        return wrapper

    return decorator


def require_auth(func: Callable) -> Callable:
    """
    Decorator that ensures the request is authenticated.

    The HTTP API authorizer puts the principal in
    requestContext.authorizer.lambda; it is exposed to handlers as
    event["principal"].

    Args:
        func: Function to decorate

    Returns:
        Decorated function
    """

    @wraps(func)
    def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
        request_context = event.get("requestContext") or {}
        authorizer_context = request_context.get("authorizer") or {}

        # Try both REST API and HTTP API formats
        auth_context = authorizer_context.get("lambda", authorizer_context)

        if not auth_context or not auth_context.get("userId"):
            logger = setup_logger(__name__)
            logger.info(
                "Authorization failed - no valid context found",
                extra={
                    "request_context_keys": list(request_context.keys()),
                    "authorizer_keys": list(authorizer_context.keys()),
                },
            )
            return unauthorized_response()

        is_admin = auth_context.get("isAdmin", False)
        event["principal"] = Principal(
            id=auth_context["userId"],
            email=auth_context.get("email", ""),
            name=auth_context.get("name", ""),
            # Authorizer context values arrive as strings
            is_admin=is_admin is True or str(is_admin).lower() == "true",
        )

        return func(event, context)

    return wrapper


def validate_json_body(required_fields: Optional[list] = None) -> Callable:
    """
    Decorator that validates and parses JSON request body.

    Args:
        required_fields: List of required field names

    Returns:
        Decorated function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            try:
                body = json.loads(event.get("body") or "{}")
            except json.JSONDecodeError as e:
                return validation_error_response(
                    "Invalid JSON in request body", {"json_error": str(e)}
                )

            if not isinstance(body, dict):
                return validation_error_response("Request body must be a JSON object")
            event["json_body"] = body

            if required_fields:
                missing_fields = [
                    field
                    for field in required_fields
                    if field not in body or body[field] is None
                ]

                if missing_fields:
                    return validation_error_response(
                        f"Missing required fields: {', '.join(missing_fields)}",
                        {"missing_fields": missing_fields},
                    )

            return func(event, context)

        return wrapper

    return decorator


def extract_path_params(*param_names: str) -> Callable:
    """
    Decorator that extracts and validates path parameters.

    Args:
        param_names: Names of path parameters to extract

    Returns:
        Decorated function
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
            path_params = event.get("pathParameters") or {}

            missing_params = [
                param
                for param in param_names
                if param not in path_params or not path_params[param]
            ]

            if missing_params:
                return validation_error_response(
                    f"Missing path parameters: {', '.join(missing_params)}",
                    {"missing_parameters": missing_params},
                )

            event["path_params"] = {param: path_params[param] for param in param_names}

            return func(event, context)

        return wrapper

    return decorator
