"""
Password hashing and password policy.

Passwords are hashed with PBKDF2-SHA256 and a per-password random salt. The
stored form is base64(salt + digest).
"""

import base64
import binascii
import hashlib
import re
import secrets

MIN_PASSWORD_LENGTH = 8

_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class PasswordHasher:
    """
    Secure password hashing using PBKDF2 with SHA-256.
    """

    ITERATIONS = 100_000
    SALT_LENGTH = 32  # 32 bytes = 256 bits

    @classmethod
    def hash_password(cls, password: str) -> str:
        """
        Hash a password with a random salt.

        Args:
            password: Plain text password to hash

        Returns:
            Base64-encoded string containing salt and hash
        """
        salt = secrets.token_bytes(cls.SALT_LENGTH)
        password_hash = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, cls.ITERATIONS
        )
        return base64.b64encode(salt + password_hash).decode("utf-8")

    @classmethod
    def verify_password(cls, password: str, stored_hash: str) -> bool:
        """
        Verify a password against a stored hash.

        Args:
            password: Plain text password to verify
            stored_hash: Base64-encoded stored hash

        Returns:
            True if password matches, False otherwise
        """
        try:
            combined = base64.b64decode(stored_hash.encode("utf-8"), validate=True)
        except (binascii.Error, ValueError):
            return False

        salt = combined[: cls.SALT_LENGTH]
        stored_password_hash = combined[cls.SALT_LENGTH :]

        password_hash = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, cls.ITERATIONS
        )

        return secrets.compare_digest(password_hash, stored_password_hash)


def password_problems(password: str) -> list:
    """
    List the ways a candidate password breaks the password policy.

    Args:
        password: Candidate password

    Returns:
        Human-readable problems; empty when the password is acceptable
    """
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if not _PASSWORD_PATTERN.match(password):
        problems.append(
            "Password must contain at least one lowercase letter, "
            "one uppercase letter, and one number"
        )
    return problems


def hash_password(password: str) -> str:
    """Hash a password using secure defaults."""
    return PasswordHasher.hash_password(password)


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against a stored hash."""
    return PasswordHasher.verify_password(password, stored_hash)
