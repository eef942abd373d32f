"""
Access and refresh token issuance and verification.

Tokens are HS256 JWTs signed with the secret from Parameter Store. Access
token claims carry the principal ({id, email, name, is_admin}) so the
authorizer can pass it to handlers without a database read. Refresh tokens
carry only the user and a token id ("jti"); they are honoured only while
their server-side record is neither revoked nor expired.
"""

import hashlib
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from models.dynamodb import utc_now
from models.users import Principal, RefreshToken, UserBase

logger = logging.getLogger(__name__)

TOKEN_ISSUER = "family-wishlist"
TOKEN_AUDIENCE = "family-wishlist-api"
DEFAULT_ACCESS_TOKEN_MINUTES = 240
DEFAULT_REFRESH_TOKEN_DAYS = 7
DEFAULT_REMEMBER_ME_DAYS = 30

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class CredentialService:
    def __init__(
        self,
        jwt_secret: str,
        access_token_minutes: int = DEFAULT_ACCESS_TOKEN_MINUTES,
        refresh_token_days: int = DEFAULT_REFRESH_TOKEN_DAYS,
        remember_me_days: int = DEFAULT_REMEMBER_ME_DAYS,
    ):
        if not jwt_secret:
            raise ValueError("A JWT secret is required")
        self.jwt_secret = jwt_secret
        self.access_token_minutes = access_token_minutes
        self.refresh_token_days = refresh_token_days
        self.remember_me_days = remember_me_days

    def issue_access_token(self, user: UserBase) -> str:
        """
        Issue a signed access token for a user.

        Args:
            user: The authenticated user

        Returns:
            Encoded JWT
        """
        now = utc_now()
        payload = {
            "sub": user.user_id,
            "email": user.email,
            "name": user.name,
            "is_admin": user.is_admin,
            "type": ACCESS_TOKEN_TYPE,
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_minutes),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    def issue_refresh_token(
        self, user: UserBase, remember_me: bool = False
    ) -> Tuple[str, RefreshToken]:
        """
        Issue a refresh token together with the record to store for it.

        Args:
            user: The authenticated user
            remember_me: Use the longer remember-me lifetime

        Returns:
            The encoded JWT and its RefreshToken record
        """
        now = utc_now()
        days = self.remember_me_days if remember_me else self.refresh_token_days
        expires_at = now + timedelta(days=days)
        record = RefreshToken(
            user_id=user.user_id, token_hash="", expires_at=expires_at, created_at=now
        )
        payload = {
            "sub": user.user_id,
            "jti": record.token_id,
            "type": REFRESH_TOKEN_TYPE,
            "iss": TOKEN_ISSUER,
            "aud": TOKEN_AUDIENCE,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.jwt_secret, algorithm="HS256")
        record.token_hash = hash_token(token)
        return token, record

    def _decode(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=TOKEN_AUDIENCE,
                issuer=TOKEN_ISSUER,
            )
        except ExpiredSignatureError:
            logger.warning("JWT token has expired")
            return None
        except InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {str(e)}")
            return None

    def decode_refresh_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Validate a refresh token's signature, lifetime and type.

        Returns:
            The claims (with "sub" and "jti") or None
        """
        payload = self._decode(token)
        if payload is None:
            return None
        if payload.get("type") != REFRESH_TOKEN_TYPE or not payload.get("jti"):
            logger.warning("Token presented for refresh is not a refresh token")
            return None
        return payload

    def verify_token(self, token: str) -> Optional[Principal]:
        """
        Validate an access token and return the principal it was issued to.

        Args:
            token: The JWT from the Authorization header

        Returns:
            The principal if the token is valid, None otherwise
        """
        payload = self._decode(token)
        if payload is None:
            return None
        if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
            logger.warning("Refresh token presented as an access token")
            return None

        return Principal(
            id=payload["sub"],
            email=payload.get("email", ""),
            name=payload.get("name", ""),
            is_admin=bool(payload.get("is_admin", False)),
        )

    @staticmethod
    def extract_token_from_header(authorization_header: str) -> Optional[str]:
        """
        Extract the JWT token from the Authorization header

        Args:
            authorization_header: The Authorization header value

        Returns:
            The JWT token if valid format, None otherwise
        """
        if not authorization_header:
            return None

        parts = authorization_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return None

        return parts[1]

    def get_principal_from_request(self, event: Dict[str, Any]) -> Optional[Principal]:
        """
        Extract and validate the caller from a Lambda event's headers.

        Args:
            event: AWS Lambda event containing headers

        Returns:
            The principal if authentication succeeded, None otherwise
        """
        headers = event.get("headers") or {}
        authorization = headers.get("Authorization") or headers.get("authorization")

        if not authorization:
            logger.debug("No Authorization header found")
            return None

        token = self.extract_token_from_header(authorization)
        if not token:
            logger.debug("Invalid Authorization header format")
            return None

        return self.verify_token(token)
