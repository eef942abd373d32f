"""
Utils package for shared utilities and cross-cutting concerns.

This package contains decorators, domain errors, logging utilities, response
formatters, rate limiting and password hashing used across the application.
"""

from .decorators import (extract_path_params, lambda_handler, require_auth,
                         validate_json_body)
from .errors import WishlistError
from .logging import (log_error, log_lambda_event, log_lambda_response,
                      log_rejection, setup_logger)
from .rate_limit import FixedWindowRateLimiter, RateLimiter
from .responses import (HTTPStatus, domain_error_response, error_response,
                        success_response, validation_error_response)
from .security import hash_password, verify_password

__all__ = [
    # Decorators
    "lambda_handler",
    "require_auth",
    "validate_json_body",
    "extract_path_params",
    # Errors
    "WishlistError",
    # Logging
    "setup_logger",
    "log_lambda_event",
    "log_lambda_response",
    "log_rejection",
    "log_error",
    # Rate limiting
    "RateLimiter",
    "FixedWindowRateLimiter",
    # Responses
    "HTTPStatus",
    "success_response",
    "error_response",
    "domain_error_response",
    "validation_error_response",
    # Security
    "hash_password",
    "verify_password",
]
