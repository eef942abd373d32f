"""
Login sessions backed by refresh tokens.

A session starts at login or registration with a short-lived access token
and a refresh token. The refresh token buys new access tokens until it
expires or is revoked: at logout, or for every session of a user whose
password is changed or reset.
"""

from datetime import datetime
from typing import Callable, Dict

from models.dynamodb import utc_now
from models.users import UserBase
from services.credentials import CredentialService, hash_token
from services.dynamodb import WishlistTable
from utils.errors import AccountLocked, AuthenticationFailed
from utils.logging import log_rejection, setup_logger

logger = setup_logger(__name__)


class SessionService:
    def __init__(
        self,
        table: WishlistTable,
        credentials: CredentialService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.table = table
        self.credentials = credentials
        self.clock = clock

    def start_session(self, user: UserBase, remember_me: bool = False) -> Dict[str, str]:
        """
        Issue an access token and a stored refresh token for a signed-in user.

        Args:
            user: The authenticated user
            remember_me: Give the refresh token the longer remember-me lifetime

        Returns:
            access_token, refresh_token and token_type
        """
        refresh_token, record = self.credentials.issue_refresh_token(user, remember_me)
        self.table.put_refresh_token(record)
        logger.info(
            "Session started",
            extra={"user_id": user.user_id, "remember_me": remember_me},
        )
        return {
            "access_token": self.credentials.issue_access_token(user),
            "refresh_token": refresh_token,
            "token_type": "Bearer",
        }

    def refresh(self, refresh_token: str) -> str:
        """
        Exchange a refresh token for a new access token.

        The token must be signed by us, be of the refresh type, and match a
        stored record that is neither revoked nor expired. The user is
        re-read, so deleted or locked accounts cannot refresh.

        Raises:
            AuthenticationFailed: The refresh token is not usable
            AccountLocked: The account is locked out
        """
        claims = self.credentials.decode_refresh_token(refresh_token)
        if claims is None:
            raise self._rejected("Invalid or expired refresh token")

        user_id, token_id = claims["sub"], claims["jti"]
        record = self.table.get_refresh_token(user_id, token_id)
        now = self.clock()
        if (
            record is None
            or record.token_hash != hash_token(refresh_token)
            or not record.is_usable(now)
        ):
            raise self._rejected("Refresh token has been revoked or has expired", user_id)

        user = self.table.get_user(user_id)
        if user is None:
            raise self._rejected("Invalid or expired refresh token", user_id)
        if user.is_locked(now):
            raise AccountLocked(details={"locked_until": user.lockout_until.isoformat()})

        logger.info("Access token refreshed", extra={"user_id": user_id})
        return self.credentials.issue_access_token(user)

    def revoke(self, refresh_token: str) -> bool:
        """
        End the session a refresh token belongs to.

        Returns:
            Whether a stored token was revoked; unusable tokens are ignored
        """
        claims = self.credentials.decode_refresh_token(refresh_token)
        if claims is None:
            return False
        revoked = self.table.revoke_refresh_token(claims["sub"], claims["jti"])
        if revoked:
            logger.info("Session ended", extra={"user_id": claims["sub"]})
        return revoked

    @staticmethod
    def _rejected(message: str, user_id: str = None) -> AuthenticationFailed:
        error = AuthenticationFailed(message)
        log_rejection(logger, error, {"user_id": user_id} if user_id else None)
        return error
